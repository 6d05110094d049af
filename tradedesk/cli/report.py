"""CLI report — prints the P&L summary to the console."""


def _money(value: float) -> str:
    sign = "-" if value < 0 else ""
    return f"{sign}₹{abs(value):,.2f}"


def print_pnl_report(pnl: dict) -> str:
    """Format and print a P&L report.

    Args:
        pnl: Dict as returned by ``TradeDesk.pnl()``.

    Returns:
        The formatted string (also printed to stdout).
    """
    lines = [
        "──────────────── TradeDesk P&L ────────────────",
        f"  Total Value:     {_money(pnl.get('totalValue', 0.0))}",
        f"  Total Cash:      {_money(pnl.get('totalCash', 0.0))}",
        f"  Total P&L:       {_money(pnl.get('totalPnl', 0.0))} "
        f"({pnl.get('totalPercent', 0.0):+.2f}%)",
        "",
        "  By asset class:",
    ]
    for asset, row in pnl.get("assetClasses", {}).items():
        lines.append(
            f"    {asset:<8} {_money(row['pnl']):>18}  ({row['percent']:+.2f}%)"
        )

    brokers = pnl.get("brokers", [])
    if brokers:
        lines.append("")
        lines.append("  By broker:")
        for row in brokers:
            lines.append(
                f"    {row['broker']:<10} {_money(row['pnl']):>18}  "
                f"({row['percent']:+.2f}%)  {row['active']} holding(s), "
                f"cash {_money(row['cash'])}"
            )

    lines.append("───────────────────────────────────────────────")
    output = "\n".join(lines)
    print(output)
    return output
