"""FastAPI backend реферальной программы AQUA Launchpad."""

from __future__ import annotations

from contextlib import asynccontextmanager
from decimal import Decimal

from fastapi import Depends, FastAPI, Header, HTTPException, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from loguru import logger
from pydantic import BaseModel, Field

from aqua.context import engine, referral_manager, settings
from aqua.database import init_db
from aqua.services.core.exceptions import (
    CodeExhaustionError,
    InvalidWalletError,
    ReferralError,
    StoreUnavailableError,
    SystemDisabledError,
)
from aqua.services.core.referral_manager import ReferralManager
from aqua.utils.money import format_sol, lamports_to_sol
from aqua.utils.security import decode_session_token, verify_internal_key

bearer_scheme = HTTPBearer(auto_error=True)

_STATUS_BY_CATEGORY = {
    "gate": status.HTTP_503_SERVICE_UNAVAILABLE,
    "validation": status.HTTP_400_BAD_REQUEST,
    "concurrency": status.HTTP_409_CONFLICT,
    "external": status.HTTP_502_BAD_GATEWAY,
    "exhaustion": status.HTTP_500_INTERNAL_SERVER_ERROR,
}

# Коды ошибок клиентского эндпоинта выплат (остальное отдаётся как 5000).
_CLAIM_ERROR_CODES = {
    "cooldown_active": 5003,
    "below_minimum": 5004,
    "invalid_wallet": 5004,
    "system_disabled": 5005,
}
_WALLET_MIN_LEN = 32
_WALLET_MAX_LEN = 44


class ApplyCodeRequest(BaseModel):
    code: str = Field(..., min_length=1, max_length=32)


class ClaimRequest(BaseModel):
    destination_wallet: str = Field(..., max_length=128)


class FeeAccrualRequest(BaseModel):
    source_user_id: str = Field(..., min_length=1, max_length=128)
    fee_amount: Decimal
    operation_type: str = Field(..., min_length=1, max_length=64)


def get_referral_manager() -> ReferralManager:
    return referral_manager


def get_user_id(credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme)) -> str:
    try:
        payload = decode_session_token(credentials.credentials)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(exc)) from exc
    return str(payload["sub"])


def require_internal_key(x_internal_key: str | None = Header(None, alias="X-Internal-Key")) -> None:
    if not verify_internal_key(x_internal_key):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid internal key")


def _ok(data: dict) -> dict:
    # суммы отдаём строками, чтобы не терять точность на float
    return {"success": True, "data": jsonable_encoder(data, custom_encoder={Decimal: str})}


def _error_response(error: ReferralError, code: int | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=_STATUS_BY_CATEGORY.get(error.category, status.HTTP_400_BAD_REQUEST),
        content={
            "success": False,
            "error": {
                "code": error.code if code is None else code,
                "reason": error.reason,
                "message": error.message,
            },
        },
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_db(engine)
    logger.info("Referral API стартует в окружении {env}", env=settings.environment)
    yield
    await engine.dispose()


app = FastAPI(title="AQUA Referral API", lifespan=lifespan)


@app.exception_handler(StoreUnavailableError)
async def _store_unavailable_handler(_: Request, exc: StoreUnavailableError) -> JSONResponse:
    response = _error_response(exc)
    response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    return response


@app.exception_handler(CodeExhaustionError)
async def _code_exhaustion_handler(_: Request, exc: CodeExhaustionError) -> JSONResponse:
    return _error_response(exc)


@app.get("/api/referral/code")
async def api_referral_code(
    user_id: str = Depends(get_user_id),
    manager: ReferralManager = Depends(get_referral_manager),
) -> dict:
    result = await manager.get_or_create_account(user_id)
    base_url = settings.web.public_url.rstrip("/")
    return _ok(
        {
            "referral_code": result.referral_code,
            "is_new": result.is_new,
            "share_percent": manager.share_percent,
            "share_link": f"{base_url}?ref={result.referral_code}",
        }
    )


@app.get("/api/referral/stats")
async def api_referral_stats(
    user_id: str = Depends(get_user_id),
    manager: ReferralManager = Depends(get_referral_manager),
) -> dict:
    stats = await manager.get_stats(user_id)
    return _ok(
        {
            "referral_code": stats.referral_code,
            "referral_count": stats.referral_count,
            "pending_earnings": stats.pending_earnings,
            "total_earnings": stats.total_earnings,
            "total_claimed": stats.total_claimed,
            "claim_count": stats.claim_count,
            "can_claim": stats.can_claim,
            "cooldown_active": stats.cooldown_active,
            "cooldown_remaining": stats.cooldown_remaining,
            "cooldown_remaining_formatted": stats.cooldown_remaining_formatted,
            "min_claim_amount": stats.min_claim_amount,
            "referrer_share_percent": stats.referrer_share_percent,
            "was_referred": stats.was_referred,
            "referred_by_code": stats.referred_by_code,
            "last_claim_at": stats.last_claim_at,
            "enabled": stats.enabled,
        }
    )


@app.get("/api/referral/claims")
async def api_referral_claims(
    user_id: str = Depends(get_user_id),
    manager: ReferralManager = Depends(get_referral_manager),
) -> dict:
    claims = await manager.get_claims(user_id)
    return _ok(
        {
            "claims": [
                {
                    "claim_id": claim.claim_id,
                    "amount": lamports_to_sol(claim.amount_lamports),
                    "destination_wallet": claim.destination_address,
                    "tx_signature": claim.tx_signature,
                    "status": claim.status,
                    "created_at": claim.created_at,
                }
                for claim in claims
            ]
        }
    )


@app.post("/api/referral/apply")
async def api_apply_referral(
    payload: ApplyCodeRequest,
    user_id: str = Depends(get_user_id),
    manager: ReferralManager = Depends(get_referral_manager),
):
    result = await manager.apply_referral_code(user_id, payload.code)
    if not result.success:
        return _error_response(result.error)
    return _ok({"referrer_id": result.referrer_id})


@app.post("/api/referral/claim")
async def api_claim(
    payload: ClaimRequest,
    user_id: str = Depends(get_user_id),
    manager: ReferralManager = Depends(get_referral_manager),
):
    if not manager.enabled:
        return _error_response(SystemDisabledError(), code=_CLAIM_ERROR_CODES["system_disabled"])
    wallet = payload.destination_wallet.strip()
    if not _WALLET_MIN_LEN <= len(wallet) <= _WALLET_MAX_LEN:
        return _error_response(InvalidWalletError(), code=_CLAIM_ERROR_CODES["invalid_wallet"])

    result = await manager.process_claim(user_id, wallet)
    if not result.success:
        return _error_response(result.error, code=_CLAIM_ERROR_CODES.get(result.error.reason, 5000))
    return _ok(
        {
            "claim_id": result.claim_id,
            "amount": result.amount,
            "amount_formatted": f"{format_sol(result.amount)} SOL",
            "tx_signature": result.tx_signature,
            "message": "Claim processed successfully!",
        }
    )


@app.post("/api/internal/referral/fees", dependencies=[Depends(require_internal_key)])
async def api_credit_fee(
    payload: FeeAccrualRequest,
    manager: ReferralManager = Depends(get_referral_manager),
):
    """Вызывается роутами сбора комиссий (trade, token create, bundles)."""

    result = await manager.credit_fee(payload.source_user_id, payload.fee_amount, payload.operation_type)
    if result is None:
        return _ok({"credited": False})
    if not result.success:
        return _error_response(result.error)
    return _ok(
        {
            "credited": True,
            "referrer_id": result.referrer_id,
            "amount": result.amount,
            "new_pending": result.new_pending,
        }
    )


@app.get("/api/referral/health")
async def referral_health(manager: ReferralManager = Depends(get_referral_manager)) -> dict:
    return {"status": "ok", "service": "aqua-referrals", "enabled": manager.enabled}


__all__ = ["app", "get_referral_manager", "get_user_id"]
