from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from walletlink.api import deps
from walletlink.core.wallet.bindings import BindingStore
from walletlink.db.models.account import Account
from walletlink.schemas.account import Account as AccountOut, AccountWithWallet

router = APIRouter()


@router.get("/me", response_model=AccountWithWallet)
async def get_current_account(
    db: AsyncSession = Depends(deps.get_db),
    current_account: Account = Depends(deps.get_current_account),
):
    binding = await BindingStore(db).get_by_account(current_account.id)
    account_out = AccountOut.model_validate(current_account).model_dump()
    return AccountWithWallet(
        **account_out,
        wallet_address=binding.address if binding else None,
        wallet_linked_at=binding.linked_at if binding else None,
    )
