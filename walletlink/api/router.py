from fastapi import APIRouter, Depends

from walletlink.api import deps
from walletlink.api.v1 import accounts, admin, auth, health, wallet

api_router = APIRouter()

_http_deps = [Depends(deps.rate_limit)]

api_router.include_router(auth.router, prefix="/auth", tags=["Auth"], dependencies=_http_deps)
api_router.include_router(wallet.router, prefix="/wallet", tags=["Wallet"], dependencies=_http_deps)
api_router.include_router(accounts.router, prefix="/accounts", tags=["Accounts"], dependencies=_http_deps)
api_router.include_router(health.router, tags=["Health"], dependencies=_http_deps)
api_router.include_router(admin.router, tags=["Admin"], dependencies=_http_deps)
