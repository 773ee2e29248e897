from fastapi import FastAPI

from chanopen.api.routes import channels
from chanopen.api.utils import node_manager
from chanopen.settings import VERSION

app = FastAPI(
    title="chanopen API",
    description="API for opening payment channels between two peers",
    version=VERSION,
)

app.include_router(channels.router)


@app.on_event("startup")
async def startup_event():
    await node_manager.start()


@app.on_event("shutdown")
async def shutdown_event():
    await node_manager.shutdown()
