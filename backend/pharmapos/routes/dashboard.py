# Overview: Flask API route for dashboard rollups.

from flask import Blueprint, request, current_app

from ..services import dashboard_service

dashboard_bp = Blueprint("dashboard", __name__, url_prefix="/api/dashboard")


@dashboard_bp.get("")
def dashboard_route():
    """
    Query params (defaults from config):
    - days: trailing sales trend window
    - recent: number of recent orders
    - top: number of top products
    """
    cfg = current_app.config
    metrics = dashboard_service.compute_metrics(
        days=request.args.get("days", default=cfg.get("SALES_TREND_DAYS", 7), type=int),
        recent_limit=request.args.get("recent", default=cfg.get("DASHBOARD_RECENT_ORDERS", 5), type=int),
        top_limit=request.args.get("top", default=cfg.get("DASHBOARD_TOP_PRODUCTS", 5), type=int),
    )
    return metrics.to_dict()


@dashboard_bp.get("/profit")
def profit_route():
    """Per-product revenue, cost and profit over completed orders. ?category= narrows it."""
    report = dashboard_service.profit_report(category=request.args.get("category"))
    return report.to_dict()
