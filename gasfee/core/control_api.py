from fastapi import FastAPI, HTTPException, Header, Depends, Request
from gasfee.core.errors import GasEstimationFailedError, SchedulerDestroyedError
from gasfee.core.logger import get_logger
from gasfee.core.config import settings
from gasfee.gas.controller import POLLABLE_ITEMS

app = FastAPI()
log = get_logger(__name__)


def verify(authorization: str | None = Header(None)):
    token = settings.CONTROL_API_TOKEN
    if not token:
        raise HTTPException(status_code=500, detail="Control token not configured")
    if authorization != f"Bearer {token}":
        raise HTTPException(status_code=401, detail="Unauthorized")

def get_controller(request: Request):
    controller = getattr(request.app.state, "controller", None)
    if controller is None:
        raise HTTPException(status_code=503, detail="Gas fee controller not attached")
    return controller

def check_item(item: str) -> str:
    if item not in POLLABLE_ITEMS:
        raise HTTPException(status_code=404, detail=f"Unknown poll item: {item}")
    return item

@app.get("/gas/state")
async def gas_state(auth: None = Depends(verify), controller=Depends(get_controller)):
    return {**controller.state.to_dict(), "pollQueue": sorted(controller.poll_queue)}

@app.post("/gas/estimate")
async def one_off_estimate(auth: None = Depends(verify), controller=Depends(get_controller)):
    try:
        result = await controller.fetch_gas_fee_estimates(should_update_state=False)
    except GasEstimationFailedError as e:
        log.error("CONTROL_API_ESTIMATE_FAILED", error=str(e))
        raise HTTPException(status_code=502, detail=str(e))
    return result.to_dict()

@app.post("/gas/polling/stop")
async def stop_all_polling(auth: None = Depends(verify), controller=Depends(get_controller)):
    controller.stop_polling()
    log.warning("CONTROL_API_POLLING_STOPPED")
    return {"pollQueue": []}

@app.post("/gas/polling/{item}/start")
async def start_polling(item: str, auth: None = Depends(verify), controller=Depends(get_controller)):
    check_item(item)
    try:
        await controller.update_with_and_start_polling_for(item)
    except SchedulerDestroyedError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except Exception as e:
        log.error("CONTROL_API_POLL_START_FAILED", item=item, error=str(e))
        raise HTTPException(status_code=502, detail=str(e))
    return {"pollQueue": sorted(controller.poll_queue)}

@app.post("/gas/polling/{item}/stop")
async def stop_polling(item: str, auth: None = Depends(verify), controller=Depends(get_controller)):
    check_item(item)
    controller.stop_polling_for(item)
    return {"pollQueue": sorted(controller.poll_queue)}
