"""
WealthDesk — Currency Helpers

Static currency table plus USD-based default rates. Live rates can be asked
of the LLM; any failure to get a parseable JSON object falls back to the
defaults, rebased to the requested currency.
"""

import json
import logging
from typing import Callable, Dict, Optional

from wealthdesk.config.settings import DEFAULT_CURRENCY

logger = logging.getLogger(__name__)

# code -> (symbol, name)
CURRENCY_DATABASE: Dict[str, Dict[str, str]] = {
    code: {"code": code, "symbol": symbol, "name": name}
    for code, symbol, name in [
        ("USD", "$", "US Dollar"),
        ("EUR", "€", "Euro"),
        ("GBP", "£", "British Pound"),
        ("RON", "lei", "Romanian Leu"),
        ("JPY", "¥", "Japanese Yen"),
        ("CHF", "CHF", "Swiss Franc"),
        ("CAD", "CA$", "Canadian Dollar"),
        ("AUD", "A$", "Australian Dollar"),
        ("CNY", "¥", "Chinese Yuan"),
        ("INR", "₹", "Indian Rupee"),
        ("BRL", "R$", "Brazilian Real"),
        ("MXN", "MX$", "Mexican Peso"),
        ("ZAR", "R", "South African Rand"),
        ("SGD", "S$", "Singapore Dollar"),
        ("HKD", "HK$", "Hong Kong Dollar"),
        ("NZD", "NZ$", "New Zealand Dollar"),
        ("SEK", "kr", "Swedish Krona"),
        ("NOK", "kr", "Norwegian Krone"),
        ("DKK", "kr", "Danish Krone"),
        ("PLN", "zł", "Polish Złoty"),
        ("CZK", "Kč", "Czech Koruna"),
        ("HUF", "Ft", "Hungarian Forint"),
    ]
}

# units of each currency per 1 USD
DEFAULT_RATES_FROM_USD: Dict[str, float] = {
    "USD": 1.0,
    "EUR": 0.92,
    "GBP": 0.79,
    "RON": 4.56,
    "JPY": 149.50,
    "CHF": 0.88,
    "CAD": 1.36,
    "AUD": 1.53,
    "CNY": 7.24,
    "INR": 83.12,
    "BRL": 4.98,
    "MXN": 17.15,
    "ZAR": 18.75,
    "SGD": 1.34,
    "HKD": 7.83,
    "NZD": 1.67,
    "SEK": 10.58,
    "NOK": 10.87,
    "DKK": 6.87,
    "PLN": 4.02,
    "CZK": 23.15,
    "HUF": 358.50,
}


def get_default_exchange_rates(base: str = DEFAULT_CURRENCY) -> Dict[str, float]:
    """Default table rebased so that `base` is 1. Unknown bases are treated as USD."""
    base_rate = DEFAULT_RATES_FROM_USD.get(base, 1.0)
    return {code: rate / base_rate for code, rate in DEFAULT_RATES_FROM_USD.items()}


def _rates_prompt(base: str) -> str:
    targets = ", ".join(c for c in CURRENCY_DATABASE if c != base)
    return (
        f"You are a currency exchange rate provider. Provide current approximate exchange rates "
        f"from {base} to the following currencies: {targets}.\n\n"
        f"Return the data as a valid JSON object where the keys are currency codes and values are "
        f"the exchange rates (how many of the target currency equals 1 {base}).\n\n"
        f"Return ONLY the JSON object, no additional text."
    )


def get_exchange_rates(base: str = DEFAULT_CURRENCY, llm: Optional[Callable[[str], str]] = None) -> Dict[str, float]:
    """
    Exchange rates keyed by currency code, relative to `base`.

    With an `llm` the rates are requested as a JSON object; anything that is
    not a JSON object of positive numbers falls back to the defaults.
    """
    if llm is None:
        return get_default_exchange_rates(base)

    try:
        parsed = json.loads(llm(_rates_prompt(base)))
        if not isinstance(parsed, dict):
            raise ValueError("rates response is not a JSON object")
        rates = {str(k): float(v) for k, v in parsed.items()}
        if any(v <= 0 for v in rates.values()):
            raise ValueError("non-positive exchange rate")
    except Exception as exc:
        logger.warning("Exchange rate lookup failed (%s), using default rates", exc)
        return get_default_exchange_rates(base)

    rates[base] = 1.0
    return rates


def convert_currency(amount: float, from_currency: str, to_currency: str, rates: Dict[str, float]) -> float:
    """Convert via the rates' base currency; a missing rate counts as 1."""
    if from_currency == to_currency:
        return amount
    from_rate = rates.get(from_currency) or 1.0
    to_rate = rates.get(to_currency) or 1.0
    return amount / from_rate * to_rate


def get_currency_symbol(code: str) -> str:
    return CURRENCY_DATABASE.get(code, {}).get("symbol", code)


def get_currency_name(code: str) -> str:
    return CURRENCY_DATABASE.get(code, {}).get("name", code)


def format_currency_with_code(amount: float, code: str, show_code: bool = True) -> str:
    """'€1,234.50 EUR'; unknown codes use the code as the symbol and never append it."""
    symbol = get_currency_symbol(code)
    text = f"{symbol}{amount:,.2f}"
    if show_code and code in CURRENCY_DATABASE:
        return f"{text} {code}"
    return text
