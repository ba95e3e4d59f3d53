from fastapi import APIRouter
from pocketledger.routes import sync, transactions

api_router = APIRouter()

api_router.include_router(sync.router, prefix="/sync", tags=["sync"])
api_router.include_router(transactions.router, prefix="/transactions", tags=["transactions"])
