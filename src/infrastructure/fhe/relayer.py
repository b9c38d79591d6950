import logging
from typing import Any, Optional, Sequence

import httpx

from src.core.proposals.gateways import (
    CryptoGatewayError,
    DecryptionSession,
    GatewayTimeoutError,
)
from src.core.proposals.models import DecryptionProof, EncryptedInput

DEFAULT_RELAYER_TIMEOUT_SECONDS = 30.0
ENCRYPTED_VALUE_TYPE = "euint32"

logger = logging.getLogger(__name__)


class RelayerCryptoGateway:
    """Crypto gateway backed by an FHE relayer's JSON API.

    ``/v1/input-proof`` returns the ciphertext handle and input proof for a
    value bound to a contract and user; ``/v1/public-decrypt`` returns the
    clear values of ledger handles together with the oracle's decryption proof.
    """

    def __init__(
        self,
        *,
        base_url: str,
        timeout_seconds: float = DEFAULT_RELAYER_TIMEOUT_SECONDS,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._client = client or httpx.AsyncClient(base_url=base_url, timeout=timeout_seconds)

    async def initialize(self) -> None:
        body = await self._request("GET", "/v1/keyurl")
        if not isinstance(body, dict) or not body.get("response"):
            raise CryptoGatewayError("RELAYER_KEY_MATERIAL_UNAVAILABLE")

    async def encrypt(
        self, value: int, *, target_address: str, actor_address: str
    ) -> EncryptedInput:
        body = await self._request(
            "POST",
            "/v1/input-proof",
            json={
                "contractAddress": target_address,
                "userAddress": actor_address,
                "values": [{"type": ENCRYPTED_VALUE_TYPE, "value": int(value)}],
            },
        )
        try:
            return EncryptedInput(ciphertext=body["handles"][0], proof=body["inputProof"])
        except (KeyError, IndexError, TypeError, ValueError) as exc:
            raise CryptoGatewayError("RELAYER_INPUT_PROOF_MALFORMED") from exc

    async def begin_decryption(
        self, handles: Sequence[str], *, target_address: str
    ) -> DecryptionSession:
        requested = list(handles)

        async def _fetch_proof() -> DecryptionProof:
            body = await self._request(
                "POST",
                "/v1/public-decrypt",
                json={"ciphertextHandles": requested, "contractAddress": target_address},
            )
            try:
                return DecryptionProof(
                    clear_values={
                        handle: int(value) for handle, value in body["clearValues"].items()
                    },
                    abi_encoded_clear_values=body["abiEncodedClearValues"],
                    proof=body["decryptionProof"],
                )
            except (KeyError, AttributeError, TypeError, ValueError) as exc:
                raise CryptoGatewayError("RELAYER_DECRYPTION_MALFORMED") from exc

        return DecryptionSession(requested, _fetch_proof)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        try:
            response = await self._client.request(method, path, **kwargs)
            response.raise_for_status()
            return response.json()
        except httpx.TimeoutException as exc:
            raise GatewayTimeoutError(f"RELAYER_TIMEOUT: {path}") from exc
        except httpx.HTTPStatusError as exc:
            logger.warning(
                "relayer.request_failed",
                extra={
                    "extra_fields": {"path": path, "status_code": exc.response.status_code}
                },
            )
            raise CryptoGatewayError(f"RELAYER_HTTP_{exc.response.status_code}: {path}") from exc
        except (httpx.HTTPError, ValueError) as exc:
            raise CryptoGatewayError(f"RELAYER_UNAVAILABLE: {path}") from exc
