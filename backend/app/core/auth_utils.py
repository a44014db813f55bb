import logging

from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from app.core.config import get_jwt_secret

logger = logging.getLogger("journalflow.auth")

# === Auth 核心配置 ===
# 中文注释:
# 1. 密钥来源于 Supabase Project Settings 中的 JWT Secret（HS256）。
# 2. 这里只负责“你是谁”；角色/能力由 user_profiles 提供，在依赖层组装为 ActorContext。
ALGORITHM = "HS256"
AUDIENCE = "authenticated"

security = HTTPBearer()


def decode_token(token: str) -> dict:
    try:
        payload = jwt.decode(token, get_jwt_secret(), algorithms=[ALGORITHM], audience=AUDIENCE)
    except JWTError as e:
        logger.info("[Auth] JWT verification failed: %s", e)
        raise HTTPException(status_code=401, detail="Token 验证失败或已过期") from e
    user_id = payload.get("sub")
    if not user_id:
        raise HTTPException(status_code=401, detail="无效的身份载荷")
    return {"id": str(user_id), "email": payload.get("email")}


async def get_current_user(credentials: HTTPAuthorizationCredentials = Depends(security)) -> dict:
    """
    解码并验证 Bearer JWT，返回 {id, email}
    """
    return decode_token(credentials.credentials)
