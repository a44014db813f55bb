import logging

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

# .env 必须在 app.core.config 导入前加载
load_dotenv()

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger("journalflow")

try:
    from app.core.sentry_init import init_sentry

    if init_sentry():
        logger.info("[sentry] enabled")
except Exception as e:
    # Sentry 初始化失败只告警，服务照常启动
    logger.warning("[sentry] init failed (ignored): %s", e)

from app.api.v1 import workflow
from app.core.config import app_config
from app.core.middleware import ExceptionHandlerMiddleware

app = FastAPI(
    title="JournalFlow API",
    description="Editorial workflow engine for academic journals",
    version="1.0.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(app_config.cors_origins),
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
    allow_headers=["Authorization", "Content-Type"],
)
app.add_middleware(ExceptionHandlerMiddleware)

app.include_router(workflow.router, prefix="/api/v1")


@app.get("/")
async def root():
    return {"service": "journalflow", "docs": "/docs"}


@app.get("/api/v1/health")
async def health():
    return {"status": "ok", "env": app_config.env, "store": app_config.store_backend}
