import logging

from fastapi import FastAPI
from splitogram.core.config import settings
from splitogram.core.errors import register_error_handlers
from splitogram.api.v1.routes.balances import router as balances_router
from splitogram.api.v1.routes.expense import router as expense_router
from splitogram.api.v1.routes.group import router as group_router
from splitogram.api.v1.routes.settlement import router as settlement_router
from splitogram.api.v1.routes.user import router as user_router

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(title="Splitogram Backend")
register_error_handlers(app)

@app.get("/")
async def root():
    return {"message": "Splitogram Backend is live"}

app.include_router(group_router, prefix="/api/v1/groups")
app.include_router(expense_router, prefix="/api/v1/groups")
app.include_router(balances_router, prefix="/api/v1/groups")
app.include_router(settlement_router, prefix="/api/v1")
app.include_router(user_router, prefix="/api/v1/users")
