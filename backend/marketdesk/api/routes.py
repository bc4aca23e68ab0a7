from fastapi import APIRouter, Depends, HTTPException, Request, Response, status

from marketdesk.registry import SESSION_COOKIE, SESSION_HEADER, SessionRegistry
from marketdesk.schemas.dashboard import (
    ChartView,
    DashboardView,
    PeriodRequest,
    SearchView,
    SelectRequest,
    StatsExchangeRequest,
)
from marketdesk.session import DashboardSession
from marketdesk.symbols import parse_exchange

router = APIRouter()


def _requested_session_id(request: Request) -> str | None:
    return request.cookies.get(SESSION_COOKIE) or request.headers.get(SESSION_HEADER)


async def get_dashboard_session(request: Request, response: Response) -> DashboardSession:
    registry: SessionRegistry = request.app.state.sessions
    session_id, session = await registry.acquire(_requested_session_id(request))
    response.set_cookie(SESSION_COOKIE, session_id, httponly=True, samesite="lax")
    response.headers[SESSION_HEADER] = session_id
    return session


def _bad_request(message: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_400_BAD_REQUEST,
        detail={"message": message},
    )


@router.get("/health")
def health() -> dict:
    return {"status": "ok"}


@router.get("/dashboard", response_model=DashboardView)
async def dashboard_endpoint(
    session: DashboardSession = Depends(get_dashboard_session),
) -> DashboardView:
    return session.dashboard_view()


@router.get("/search", response_model=SearchView)
async def search_endpoint(
    q: str = "", session: DashboardSession = Depends(get_dashboard_session)
) -> SearchView:
    return await session.run_search(q)


@router.post("/select", response_model=DashboardView)
async def select_endpoint(
    payload: SelectRequest, session: DashboardSession = Depends(get_dashboard_session)
) -> DashboardView:
    symbol = payload.symbol.strip()
    if not symbol:
        raise _bad_request("symbol is required.")
    try:
        exchange = parse_exchange(payload.exchange)
    except ValueError as exc:
        raise _bad_request(str(exc)) from exc

    session.select(session.resolve_symbol(symbol), exchange, close_search=True)
    await session.quotes.settle()
    return session.dashboard_view()


@router.post("/period", response_model=ChartView)
async def period_endpoint(
    payload: PeriodRequest, session: DashboardSession = Depends(get_dashboard_session)
) -> ChartView:
    try:
        session.set_period(payload.period)
    except ValueError as exc:
        raise _bad_request(str(exc)) from exc
    await session.chart.settle()
    return session.chart_view()


@router.post("/stats-exchange", response_model=DashboardView)
async def stats_exchange_endpoint(
    payload: StatsExchangeRequest, session: DashboardSession = Depends(get_dashboard_session)
) -> DashboardView:
    try:
        session.set_active_stats_exchange(payload.exchange)
    except ValueError as exc:
        raise _bad_request(str(exc)) from exc
    return session.dashboard_view()


@router.get("/chart", response_model=ChartView)
async def chart_endpoint(
    session: DashboardSession = Depends(get_dashboard_session),
) -> ChartView:
    return session.chart_view()


@router.delete("/session", status_code=status.HTTP_204_NO_CONTENT)
async def close_session_endpoint(request: Request, response: Response) -> Response:
    registry: SessionRegistry = request.app.state.sessions
    session_id = _requested_session_id(request)
    if session_id:
        await registry.close(session_id)
    response.status_code = status.HTTP_204_NO_CONTENT
    response.delete_cookie(SESSION_COOKIE)
    return response
