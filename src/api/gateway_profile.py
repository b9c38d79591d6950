from __future__ import annotations

import os

from src.api.routers.proposals_config import (
    crypto_gateway_backend_name,
    crypto_relayer_url,
    ledger_contract_address,
    ledger_gateway_backend_name,
    ledger_rpc_url,
)

_PRODUCTION_PROFILE = "PRODUCTION"
_LOCAL_PROFILE = "LOCAL"


def app_gateway_profile_name() -> str:
    profile = os.getenv("APP_GATEWAY_PROFILE", _LOCAL_PROFILE).strip().upper()
    return _PRODUCTION_PROFILE if profile == _PRODUCTION_PROFILE else _LOCAL_PROFILE


def validate_gateway_profile_guardrails() -> None:
    if app_gateway_profile_name() != _PRODUCTION_PROFILE:
        return
    if ledger_gateway_backend_name() != "WEB3":
        raise RuntimeError("GATEWAY_PROFILE_REQUIRES_WEB3_LEDGER")
    if not ledger_rpc_url():
        raise RuntimeError("GATEWAY_PROFILE_REQUIRES_LEDGER_RPC_URL")
    if not ledger_contract_address():
        raise RuntimeError("GATEWAY_PROFILE_REQUIRES_LEDGER_CONTRACT_ADDRESS")
    if crypto_gateway_backend_name() != "RELAYER":
        raise RuntimeError("GATEWAY_PROFILE_REQUIRES_CRYPTO_RELAYER")
    if not crypto_relayer_url():
        raise RuntimeError("GATEWAY_PROFILE_REQUIRES_CRYPTO_RELAYER_URL")
