import logging
from contextlib import asynccontextmanager
from pathlib import Path

import httpx
from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse
from fastmcp import FastMCP

import config
from chain_resolvers import SolanaRpcClient, build_registry
from models import HealthResponse, PortfolioEntry, PortfolioRequest, WalletRequest
from portfolio import PortfolioAggregator, PortfolioService, PriceJoiner

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


def _serialize(entries: list[PortfolioEntry]) -> list[dict]:
    return [e.model_dump(mode="json", exclude_none=True) for e in entries]


# ── MCP Server (mounted at /mcp) ─────────────────────────────────────────────

mcp = FastMCP(
    name="Crypto Portfolio Tracker",
    instructions=(
        "Reports current balances, recent activity and USD/EUR/CHF value for "
        "BTC, ETH, SOL and ADA wallets. Provide a list of {chain, address} pairs."
    ),
)


@mcp.tool()
async def get_portfolio_mcp(wallets: list[dict]) -> list[dict]:
    """
    Resolve a list of wallets into balances, recent activity and fiat values.

    Args:
        wallets: Items shaped {"chain": "BTC"|"ETH"|"SOL"|"ADA", "address": str}.

    Returns:
        One entry per wallet, in input order; failed wallets carry an "error".
    """
    requests = [WalletRequest(**w) for w in wallets]
    return _serialize(await portfolio_service.build_portfolio(requests))


# Served at the mount point itself, so the public endpoint is /mcp/
mcp_app = mcp.http_app(path="/", json_response=True)


# ── Lifespan ──────────────────────────────────────────────────────────────────

portfolio_service: PortfolioService | None = None
supported_chains: list[str] = []


@asynccontextmanager
async def lifespan(app: FastAPI):
    global portfolio_service, supported_chains
    http_client = httpx.AsyncClient(timeout=config.PROVIDER_TIMEOUT_SEC)
    solana_rpc = SolanaRpcClient()
    registry = build_registry(http_client, solana_rpc)
    supported_chains = registry.chains
    portfolio_service = PortfolioService(
        PortfolioAggregator(registry),
        PriceJoiner(http_client),
    )
    logger.info(f"Portfolio tracker ready ({', '.join(supported_chains)})")
    try:
        async with mcp_app.lifespan(app):
            yield
    finally:
        await solana_rpc.close()
        await http_client.aclose()
        logger.info("Shutting down.")


# ── App ───────────────────────────────────────────────────────────────────────

app = FastAPI(
    title="Crypto Portfolio Tracker",
    description=(
        "Aggregates native balances and recent activity for BTC, ETH, SOL and ADA "
        "wallets and values them in USD, EUR and CHF.\n\n"
        "Exposes **REST** (`/api/portfolio`) and **MCP** (`/mcp/`) endpoints."
    ),
    version=config.VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

app.mount("/mcp", mcp_app)


@app.exception_handler(RequestValidationError)
async def invalid_input(request: Request, exc: RequestValidationError):
    return JSONResponse(status_code=400, content={"error": "Invalid input format"})


# ── Info ──────────────────────────────────────────────────────────────────────


@app.get("/api", tags=["Info"])
def info(request: Request):
    base = str(request.base_url).rstrip("/")
    return {
        "name": "Crypto Portfolio Tracker",
        "version": config.VERSION,
        "supported_chains": supported_chains,
        "endpoints": {
            "docs": f"{base}/docs",
            "health": f"{base}/health",
            "portfolio": f"{base}/api/portfolio",
            "mcp": f"{base}/mcp/",
        },
    }


@app.get("/health", response_model=HealthResponse, tags=["Info"])
def health():
    return HealthResponse(status="ok", version=config.VERSION)


# ── Core: Portfolio ───────────────────────────────────────────────────────────


@app.post("/api/portfolio", tags=["Portfolio"])
async def get_portfolio(req: PortfolioRequest):
    """
    Resolve every wallet and value it in fiat.

    Wallets resolve concurrently and fail independently: a bad address or an
    unsupported chain becomes an `error` on that entry only. Entries come
    back in request order.
    """
    try:
        entries = await portfolio_service.build_portfolio(req.wallets)
        return _serialize(entries)
    except Exception:
        logger.exception("Critical server error")
        return JSONResponse(status_code=500, content={"error": "Internal Server Error"})


# ── Frontend (single-page app) ────────────────────────────────────────────────


@app.get("/{full_path:path}", include_in_schema=False)
def frontend(full_path: str):
    static_root = Path(config.STATIC_DIR).resolve()
    if full_path:
        candidate = (static_root / full_path).resolve()
        if candidate.is_file() and static_root in candidate.parents:
            return FileResponse(candidate)

    # Client-side routes all render the same entry page
    index = static_root / "index.html"
    if index.is_file():
        return FileResponse(index)
    raise HTTPException(status_code=404, detail="Not Found")


# ── Entry point ───────────────────────────────────────────────────────────────

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host=config.HOST,
        port=config.PORT,
        reload=config.APP_ENV == "development",
    )
