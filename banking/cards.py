import json
import logging
import re
import secrets
from datetime import datetime, timezone
from typing import Optional, Protocol

from groq import Groq
from pydantic import ValidationError

from .config import CardGeneratorKind, Settings
from .errors import UpstreamFailureError
from .models import CardDetails

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """You are a banking system. Generate realistic card details for a new account holder.

Return a JSON object with exactly these keys:
{
    "card_number": "16 digits, starting with 4 (Visa), passing the Luhn check",
    "cvv": "3 digits",
    "expiry_date": "MM/YY",
    "barcode": "8 digits"
}

Return ONLY valid JSON, no explanations."""


def luhn_check_digit(partial: str) -> str:
    total = 0
    for i, ch in enumerate(reversed(partial)):
        digit = int(ch)
        # Doubling starts with the rightmost digit once the check digit is appended.
        if i % 2 == 0:
            digit *= 2
            if digit > 9:
                digit -= 9
        total += digit
    return str((10 - total % 10) % 10)


def luhn_valid(number: str) -> bool:
    if not number.isdigit() or len(number) < 2:
        return False
    return luhn_check_digit(number[:-1]) == number[-1]


def expiry_one_year_from(now: Optional[datetime] = None) -> str:
    now = now or datetime.now(timezone.utc)
    return f"{now.month:02d}/{(now.year + 1) % 100:02d}"


def _random_digits(count: int) -> str:
    return "".join(str(secrets.randbelow(10)) for _ in range(count))


class CardDetailGenerator(Protocol):
    def generate(self, account_holder_name: str) -> CardDetails: ...


class LocalCardDetailGenerator:
    """Generates Visa-style card details without any external call."""

    def generate(self, account_holder_name: str) -> CardDetails:
        partial = "4" + _random_digits(14)
        return CardDetails(
            card_number=partial + luhn_check_digit(partial),
            cvv=_random_digits(3),
            expiry_date=expiry_one_year_from(),
            barcode=_random_digits(8),
        )


class GroqCardDetailGenerator:
    def __init__(self, api_key: str, model: str = "llama-3.3-70b-versatile", client: Optional[Groq] = None):
        self.model = model
        self.client = client or Groq(api_key=api_key)

    def generate(self, account_holder_name: str) -> CardDetails:
        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": f"Name: {account_holder_name}"}
                ],
                temperature=0.7,
                max_tokens=256
            )
            content = response.choices[0].message.content
        except Exception as e:
            logger.error("Card detail generation failed", extra={"error": str(e)})
            raise UpstreamFailureError("Failed to generate account details. Please try again.") from e

        data = self._extract_json(content or "")
        # The model's expiry is never trusted.
        data["expiry_date"] = expiry_one_year_from()
        try:
            details = CardDetails(**data)
        except (TypeError, ValidationError) as e:
            raise UpstreamFailureError("Card detail generator returned malformed details.") from e

        if not luhn_valid(details.card_number):
            raise UpstreamFailureError("Card detail generator returned a card number failing the Luhn check.")
        return details

    def _extract_json(self, text: str) -> dict:
        json_match = re.search(r'\{[\s\S]*\}', text)
        if json_match:
            try:
                return json.loads(json_match.group())
            except json.JSONDecodeError:
                pass
        return {}


def get_card_generator(settings: Settings) -> CardDetailGenerator:
    if settings.card_generator == CardGeneratorKind.GROQ:
        if not settings.groq_api_key:
            raise ValueError("card_generator=groq requires GROQ_API_KEY")
        return GroqCardDetailGenerator(api_key=settings.groq_api_key, model=settings.groq_model)
    return LocalCardDetailGenerator()
