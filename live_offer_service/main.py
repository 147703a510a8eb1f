import asyncio
import json
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from aiokafka import AIOKafkaProducer
import redis.asyncio as redis

from common.tracing import setup_telemetry
from live_offer_service import config
from live_offer_service.backend_client import LiveOfferBackend
from live_offer_service.checkout_events import CheckoutEventPublisher
from live_offer_service.rate_limit import RateLimiter
from live_offer_service.routers import checkout, live_offers
from live_offer_service.sessions import SessionRegistry
from live_offer_service.stock_sync import StockViewHub

# 로거 설정
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

# 전역 변수
producer: AIOKafkaProducer = None
redis_client: redis.Redis = None
backend: LiveOfferBackend = None

@asynccontextmanager
async def lifespan(app: FastAPI):
    global producer, redis_client, backend

    if config.TELEMETRY_ENABLED:
        logger.info("Setting up OpenTelemetry...")
        setup_telemetry(app, config.OTEL_SERVICE_NAME)
        logger.info("OpenTelemetry setup complete.")

    # Redis 및 Kafka 클라이언트 초기화
    while True:
        try:
            logger.info("Attempting to connect to Redis and Kafka...")
            redis_client = redis.Redis(host=config.REDIS_HOST, port=config.REDIS_PORT, db=0)
            await redis_client.ping()
            producer = AIOKafkaProducer(
                bootstrap_servers=config.KAFKA_BOOTSTRAP_SERVERS,
                value_serializer=lambda v: json.dumps(v).encode('utf-8')
            )
            await producer.start()
            logger.info("Redis and Kafka clients connected successfully!")
            break
        except Exception as e:
            logger.error(f"Connection failed: {e}. Retrying in {config.CONNECT_RETRY_SECONDS} seconds...")
            if producer:
                await producer.stop()
                producer = None
            if redis_client:
                await redis_client.aclose()
                redis_client = None
            await asyncio.sleep(config.CONNECT_RETRY_SECONDS)

    backend = LiveOfferBackend()
    hub = StockViewHub(redis_client, backend)
    app.state.stock_views = hub
    app.state.sessions = SessionRegistry(backend, hub, CheckoutEventPublisher(producer))
    app.state.purchase_limiter = RateLimiter(redis_client, "live_offer_purchase")
    yield

    # 애플리케이션 종료 시 리소스 정리
    await app.state.sessions.close_all()
    await hub.close()
    await backend.aclose()
    if producer:
        await producer.stop()
    if redis_client:
        await redis_client.aclose()
    logger.info("Live offer service shut down gracefully.")

app = FastAPI(lifespan=lifespan)

app.include_router(live_offers.router)
app.include_router(checkout.router)

@app.get("/")
def health_check():
    return {"status": "ok", "message": "Live offer service is running."}
