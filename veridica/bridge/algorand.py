"""Algorand ledger adapter: proofs as zero-amount self-payments.

Bridge boundary
---------------
Each registration is a 0-ALGO payment from the backend account to itself
whose ``note`` field carries the canonical proof note (see
``build_proof_note``).  The transaction id is the proof reference; the
indexer is used to look it up again.

``py-algorand-sdk`` is imported when the client is constructed.  If it is
not installed the constructor raises ``LedgerUnavailable`` so callers get
the closed error taxonomy rather than an ``ImportError`` deep in a call
stack.  Install with ``pip install veridica[algorand]``.

SDK and HTTP errors are classified here, once:

- HTTP 4xx from algod, or a pool rejection → ``LedgerRejected``
- transport errors, HTTP 5xx, no status → ``LedgerUnavailable``
- confirmation not reached within the configured rounds → ``LedgerTimeout``
"""

from __future__ import annotations

import base64
import json
import logging
from typing import Any

from veridica.bridge.ledger import (
    DEFAULT_APP_NAME,
    LedgerReceipt,
    LedgerVerification,
    build_proof_note,
    explorer_url,
)
from veridica.core.errors import (
    LedgerError,
    LedgerRejected,
    LedgerTimeout,
    LedgerUnavailable,
)

logger = logging.getLogger(__name__)

MNEMONIC_WORD_COUNT = 25
DEFAULT_CONFIRMATION_ROUNDS = 4


def validate_mnemonic(phrase: str) -> list[str]:
    """Return problems with a backend account mnemonic; empty means usable.

    Only the shape is checked (25 words); the SDK verifies the checksum.
    """
    if not phrase or not phrase.strip():
        return ["Algorand backend mnemonic is not configured."]
    words = phrase.split()
    if len(words) != MNEMONIC_WORD_COUNT:
        return [
            f"Algorand backend mnemonic must have {MNEMONIC_WORD_COUNT} words, "
            f"got {len(words)}."
        ]
    return []


def _load_sdk() -> Any:
    try:
        import algosdk
        from algosdk import error, mnemonic, transaction  # noqa: F401
        from algosdk.v2client import algod, indexer  # noqa: F401
    except ImportError as exc:
        raise LedgerUnavailable(
            "py-algorand-sdk is not installed; install veridica[algorand] "
            "or set VERIDICA_LEDGER_BACKEND=memory for development."
        ) from exc
    return algosdk


class AlgorandLedgerClient:
    """Ledger client backed by an Algorand node and indexer.

    Parameters
    ----------
    mnemonic_phrase:
        25-word mnemonic of the backend account that pays for proofs.
    algod_url, indexer_url, api_token:
        Node endpoints and the ``X-Algo-API-Token`` header value.
    explorer_base_url:
        Prefix for explorer links (``{base}/tx/{txid}``).
    confirmation_rounds:
        Rounds to wait for confirmation before raising ``LedgerTimeout``.
    algod_client, indexer_client:
        Pre-built SDK clients; constructed from the URLs when omitted.
    """

    def __init__(
        self,
        mnemonic_phrase: str,
        *,
        algod_url: str = "",
        indexer_url: str = "",
        api_token: str = "",
        explorer_base_url: str = "",
        confirmation_rounds: int = DEFAULT_CONFIRMATION_ROUNDS,
        app_name: str = DEFAULT_APP_NAME,
        algod_client: Any | None = None,
        indexer_client: Any | None = None,
    ) -> None:
        problems = validate_mnemonic(mnemonic_phrase)
        if problems:
            raise LedgerUnavailable(" ".join(problems))

        self._sdk = _load_sdk()
        from algosdk import account, mnemonic
        from algosdk.v2client import algod, indexer

        try:
            self._private_key = mnemonic.to_private_key(" ".join(mnemonic_phrase.split()))
        except Exception as exc:  # WrongChecksumError, WrongMnemonicLengthError, ...
            raise LedgerUnavailable(f"Invalid Algorand backend mnemonic: {exc}") from exc
        self.address = account.address_from_private_key(self._private_key)

        headers = {"X-Algo-API-Token": api_token} if api_token else None
        self._algod = algod_client or algod.AlgodClient(api_token, algod_url, headers)
        self._indexer = indexer_client or indexer.IndexerClient(
            api_token, indexer_url, headers
        )
        self._explorer_base_url = explorer_base_url
        self._confirmation_rounds = confirmation_rounds
        self._app_name = app_name

        logger.info("AlgorandLedgerClient initialized (address=%s)", self.address)

    # ------------------------------------------------------------------
    # LedgerClient
    # ------------------------------------------------------------------

    def register(
        self,
        fingerprint: str,
        owner_id: str,
        *,
        content_type: str,
        filename: str,
        size_bytes: int,
    ) -> LedgerReceipt:
        from algosdk import transaction

        note = build_proof_note(
            fingerprint,
            owner_id,
            content_type=content_type,
            filename=filename,
            size_bytes=size_bytes,
            app_name=self._app_name,
        )
        logger.debug("Registering %s on Algorand (note=%d bytes)", fingerprint[:12], len(note))

        try:
            params = self._algod.suggested_params()
            txn = transaction.PaymentTxn(
                sender=self.address,
                sp=params,
                receiver=self.address,
                amt=0,
                note=note,
            )
            signed = txn.sign(self._private_key)
            txid = self._algod.send_transaction(signed)
            confirmed = transaction.wait_for_confirmation(
                self._algod, txid, self._confirmation_rounds
            )
        except LedgerError:
            raise
        except Exception as exc:
            raise self._classify(exc, "register") from exc

        logger.info("Proof %s confirmed on Algorand as %s", fingerprint[:12], txid)
        return LedgerReceipt(
            transaction_id=txid,
            explorer_url=explorer_url(self._explorer_base_url, txid),
            confirmed_round=confirmed.get("confirmed-round"),
        )

    def verify(self, transaction_id: str) -> LedgerVerification:
        try:
            info = self._indexer.transaction(transaction_id)
        except Exception as exc:
            if getattr(exc, "code", None) == 404:
                return LedgerVerification(
                    transaction_id=transaction_id,
                    confirmed=False,
                    error="Transaction not found",
                )
            raise self._classify(exc, "verify") from exc

        txn = info.get("transaction") or {}
        if not txn:
            return LedgerVerification(
                transaction_id=transaction_id,
                confirmed=False,
                error="Transaction not found",
            )

        raw_note = txn.get("note")
        if not raw_note:
            return LedgerVerification(
                transaction_id=transaction_id,
                confirmed=False,
                error="No proof data found in transaction",
            )
        try:
            note = json.loads(base64.b64decode(raw_note))
        except (ValueError, TypeError):
            return LedgerVerification(
                transaction_id=transaction_id,
                confirmed=False,
                error="Invalid proof data format",
            )

        return LedgerVerification(
            transaction_id=transaction_id,
            confirmed=txn.get("confirmed-round") is not None,
            confirmed_round=txn.get("confirmed-round"),
            note=note,
        )

    # ------------------------------------------------------------------
    # Health
    # ------------------------------------------------------------------

    def network_status(self) -> dict[str, Any]:
        """Ask algod for its status and the backend account balance; never raises.

        ``amount`` is in microAlgos.  It is ``None`` when the node answers
        but the account lookup fails.
        """
        try:
            status = self._algod.status()
        except Exception as exc:
            logger.warning("Algorand status check failed: %s", exc)
            return {"connected": False, "backend": "algorand", "error": str(exc)}

        result: dict[str, Any] = {
            "connected": True,
            "backend": "algorand",
            "address": self.address,
            "last_round": status.get("last-round"),
            "amount": None,
        }
        try:
            result["amount"] = self._algod.account_info(self.address).get("amount")
        except Exception as exc:
            logger.warning("Algorand balance lookup for %s failed: %s", self.address, exc)
            result["error"] = str(exc)
        return result

    # ------------------------------------------------------------------
    # Error classification
    # ------------------------------------------------------------------

    def _classify(self, exc: Exception, operation: str) -> LedgerError:
        sdk_error = self._sdk.error
        if isinstance(exc, sdk_error.ConfirmationTimeoutError):
            return LedgerTimeout(
                f"Algorand {operation}: not confirmed within "
                f"{self._confirmation_rounds} rounds"
            )
        if isinstance(exc, sdk_error.TransactionRejectedError):
            logger.error("Algorand %s rejected from the pool: %s", operation, exc)
            return LedgerRejected(f"Algorand {operation} rejected: {exc}")

        code = getattr(exc, "code", None)
        if isinstance(code, int) and 400 <= code < 500:
            logger.error("Algorand %s rejected (HTTP %d): %s", operation, code, exc)
            return LedgerRejected(f"Algorand {operation} rejected: {exc}")

        logger.warning("Algorand %s unavailable: %s", operation, exc)
        return LedgerUnavailable(f"Algorand {operation} failed: {exc}")
