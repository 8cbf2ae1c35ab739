"""CLI dashboard — prints autopilot status to the console."""


def print_status(status: dict) -> str:
    """Format and print the current autopilot status.

    Args:
        status: Dict as returned by ``AutopilotEngine.status()``.

    Returns:
        The formatted string (also printed to stdout).
    """
    running = status.get("running", False)
    phase = status.get("phase") or "n/a"
    strategy = status.get("strategy") or "N/A"
    risk = status.get("risk_index")
    day_risk = status.get("day_trade_risk_index")
    orders = status.get("orders") or {}
    profit = status.get("profit_today")
    ticks = status.get("tick_count", 0)

    risk_str = str(risk) if risk is not None else "N/A"
    day_risk_str = str(day_risk) if day_risk is not None else "N/A"
    profit_str = f"${profit:,.2f}" if profit is not None else "N/A"
    orders_str = (
        f"{orders.get('sell', 0)} sell / {orders.get('buy', 0)} buy / "
        f"{orders.get('other', 0)} day trade"
    )

    lines = [
        "──────────────── Autopilot Status ────────────────",
        f"  Running:         {running}",
        f"  Phase:           {phase}",
        f"  Strategy:        {strategy}",
        f"  Risk Index:      {risk_str}",
        f"  Day Trade Risk:  {day_risk_str}",
        f"  Backtested:      {status.get('is_backtested', False)}",
        f"  Trading Started: {status.get('is_trading_started', False)}",
        f"  Orders:          {orders_str}",
        f"  Sink Depth:      {status.get('sink_depth', 0)}",
        f"  Profit Today:    {profit_str}",
        f"  Ticks:           {ticks}",
        "──────────────────────────────────────────────────",
    ]
    output = "\n".join(lines)
    print(output)
    return output
