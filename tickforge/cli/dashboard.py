"""CLI dashboard — prints bot status to the console."""


def print_status(status: dict) -> str:
    """Format and print the current bot status.

    Args:
        status: Dict as returned by ``TradingBot.status()``.

    Returns:
        The formatted string (also printed to stdout).
    """
    connected = status.get("connected", False)
    account = status.get("account_id") or "N/A"
    is_virtual = status.get("is_virtual", True)
    balance = status.get("balance")
    currency = status.get("currency") or ""
    state = status.get("state", "IDLE")
    symbol = status.get("symbol", "N/A")
    contract_type = status.get("contract_type", "N/A")
    signal_status = status.get("signal_status", "IDLE")
    open_contracts = status.get("open_contracts", 0)
    cooldown = status.get("cooldown_remaining", 0.0)
    net = status.get("session_net")
    halt_reason = status.get("halt_reason")
    uptime = status.get("uptime_seconds", 0)

    balance_str = f"{balance:,.2f} {currency}".strip() if balance is not None else "N/A"
    net_str = f"{net:+,.2f}" if net is not None else "N/A"
    account_str = f"{account} ({'demo' if is_virtual else 'REAL'})"
    state_str = f"{state} ({halt_reason})" if halt_reason else state

    lines = [
        "──────────────── TickForge Status ────────────────",
        f"  Connected:       {connected}",
        f"  Account:         {account_str}",
        f"  Balance:         {balance_str}",
        f"  State:           {state_str}",
        f"  Symbol:          {symbol}",
        f"  Contract:        {contract_type}",
        f"  Signal:          {signal_status}",
        f"  Open Contracts:  {open_contracts}",
        f"  Cooldown:        {cooldown:.1f}s",
        f"  Session P/L:     {net_str}",
        f"  Uptime:          {uptime:.0f}s",
        "──────────────────────────────────────────────────",
    ]
    output = "\n".join(lines)
    print(output)
    return output
