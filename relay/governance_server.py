from __future__ import annotations

from typing import Optional

from fastapi import FastAPI

from relay.core.commit_ledger import CommitLedger
from relay.core.config import GENESIS_CUSTODIAN, LOG_LEVEL
from relay.core.observability import get_logger, setup_logging
from relay.modules.router.governance_router import get_ledger, router as governance_router, set_ledger

logger = get_logger('router')


def create_app(ledger: Optional[CommitLedger] = None,
               custodian_id: Optional[str] = GENESIS_CUSTODIAN) -> FastAPI:
    """
    Build the HTTP app around one ledger.

    When custodian_id is given and the store has no genesis grant yet, the
    root grant is seeded for that custodian before the app serves anything.
    """
    if ledger is not None:
        set_ledger(ledger)

    if custodian_id:
        result = get_ledger().resolver.seed_genesis(custodian_id)
        if not result.accepted:
            logger.info(f"Genesis not seeded for {custodian_id}: {result.reason.value}")

    app = FastAPI(title="Relay Governance Core")
    app.include_router(governance_router)

    @app.get("/health")
    def health():
        return {"status": "ok"}

    return app


# =========================
# FastAPI app
# =========================

setup_logging(LOG_LEVEL)
app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="127.0.0.1", port=8000, log_level=LOG_LEVEL.lower())
