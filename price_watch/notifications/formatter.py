from __future__ import annotations

from typing import List, Optional

from price_watch.watcher.fanout import ProviderOutcome

UNAVAILABLE = "unavailable"


def format_price(value: Optional[float]) -> str:
    if value is None:
        return "n/a"
    text = f"{float(value):.10f}".rstrip("0")
    if text.endswith("."):
        text += "0"
    return text


def format_change(value: float) -> str:
    return f"{value:+.2f}%"


def format_provider_section(outcome: ProviderOutcome) -> List[str]:
    lines = [f"--- {outcome.provider} ---"]
    if not outcome.ok:
        lines.append(f"{UNAVAILABLE} ({outcome.error})")
        return lines

    if not outcome.data:
        lines.append("no data")
        return lines

    for token, quote in outcome.data.items():
        line = f"Token {token}: {format_price(quote.price)}"
        if quote.change_24h is not None:
            line += f" (24h: {format_change(quote.change_24h)})"
        lines.append(line)
    return lines


def compose_report(template: str, outcomes: List[ProviderOutcome]) -> str:
    """Render the job template followed by one section per provider outcome.

    Sections keep the order of ``outcomes``; failed providers get an
    explicit "unavailable" section instead of being left out.
    """
    lines: List[str] = []
    if template:
        lines.extend([template, ""])
    for outcome in outcomes:
        lines.extend(format_provider_section(outcome))
    return "\n".join(lines)
