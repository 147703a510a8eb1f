import os

# 외부 백엔드(엣지 함수) 설정
LIVE_OFFERS_BACKEND_URL = os.getenv("LIVE_OFFERS_BACKEND_URL", "http://localhost:54321/functions/v1")
LIVE_OFFERS_BACKEND_API_KEY = os.getenv("LIVE_OFFERS_BACKEND_API_KEY", "")
LIVE_OFFERS_BACKEND_TIMEOUT_MS = int(os.getenv("LIVE_OFFERS_BACKEND_TIMEOUT_MS", 5000))

# Redis 설정
REDIS_HOST = os.getenv("REDIS_HOST", "redis")
REDIS_PORT = int(os.getenv("REDIS_PORT", 6379))
STOCK_CHANNEL_PREFIX = "live_offers"

# Kafka 설정
KAFKA_BOOTSTRAP_SERVERS = os.getenv("KAFKA_BOOTSTRAP_SERVERS", "kafka:9092")
LIVE_OFFER_CHECKOUTS_TOPIC = os.getenv("LIVE_OFFER_CHECKOUTS_TOPIC", "live_offer_checkouts")

# Purchase attempts allowed per session within one window
PURCHASE_RATE_LIMIT_MAX = int(os.getenv("PURCHASE_RATE_LIMIT_MAX", 5))
PURCHASE_RATE_LIMIT_WINDOW_SECONDS = int(os.getenv("PURCHASE_RATE_LIMIT_WINDOW_SECONDS", 60))

CONNECT_RETRY_SECONDS = int(os.getenv("CONNECT_RETRY_SECONDS", 5))

TELEMETRY_ENABLED = os.getenv("TELEMETRY_ENABLED", "true").lower() == "true"
OTEL_SERVICE_NAME = os.getenv("OTEL_SERVICE_NAME", "live_offer_service")
