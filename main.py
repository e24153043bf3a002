# /main.py
# Gas fee service: keeps fee-market estimates and the congestion flag fresh
# and serves them over HTTP.
import asyncio
from aiohttp import web
import uvicorn

from gasfee.core.config import settings
from gasfee.core.config_validator import validate as validate_config
from gasfee.core.control_api import app as control_app
from gasfee.core.logger import configure_logging, get_logger
from gasfee.adapters.rpc import EthClient
from gasfee.gas.controller import GasFeeController

log = get_logger("GasFee.System")


def build_web_app(controller: GasFeeController) -> web.Application:
    async def healthz(request):
        """Provides a JSON health status for the service."""
        return web.json_response({
            "status": "ok",
            "polling": controller.scheduler.is_running,
            "poll_queue": sorted(controller.poll_queue),
        })

    async def gas(request):
        return web.json_response(controller.state.to_dict())

    app = web.Application()
    app.add_routes([web.get("/healthz", healthz), web.get("/gas", gas)])
    return app


async def main():
    configure_logging()
    validate_config()
    log.info("GAS_FEE_SERVICE_STARTING")

    client = EthClient(settings.rpc_url)
    try:
        await run_service(client)
    finally:
        await client.aclose()
        log.warning("SYSTEM_SHUTDOWN_COMPLETE")


async def run_service(client: EthClient):
    chain_id = await client.connect()
    if chain_id != settings.chain_id:
        log.warning("CHAIN_ID_MISMATCH", configured=settings.chain_id, node=chain_id)

    controller = GasFeeController(
        client=client,
        get_chain_id=lambda: chain_id,
        get_network_eip1559_compatibility=client.supports_eip1559,
        get_network_legacy_gas_api_compatibility=lambda: chain_id in settings.LEGACY_GAS_API_CHAIN_IDS,
    )
    control_app.state.controller = controller

    await asyncio.gather(
        controller.update_with_and_start_polling_for("gasFeeEstimates"),
        controller.update_with_and_start_polling_for("isNetworkCongested"),
    )

    # --- Start Health/State Server ---
    runner = web.AppRunner(build_web_app(controller))
    await runner.setup()
    site = web.TCPSite(runner, "0.0.0.0", settings.HEALTH_PORT)
    await site.start()
    log.info("HEALTHCHECK_SERVER_STARTED", port=settings.HEALTH_PORT)

    try:
        if settings.CONTROL_API_TOKEN:
            server = uvicorn.Server(uvicorn.Config(control_app, host="0.0.0.0", port=settings.CONTROL_API_PORT, log_level="warning"))
            log.info("CONTROL_API_STARTED", port=settings.CONTROL_API_PORT)
            await server.serve()
        else:
            await asyncio.Event().wait()
    finally:
        controller.destroy()
        await runner.cleanup()

if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass
