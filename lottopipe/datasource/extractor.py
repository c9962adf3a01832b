"""
Draw page extraction.

Turns a rendered result page into an unvalidated draw candidate. Positions
are structural: the round label in the result heading, the winning balls and
the bonus ball by class, and the prize table with tier N in row N (column 3
holds the winner count, column 4 the payout per winner).

Anything missing raises StructuralParseError. Values are never guessed; range
checks are left to the validator.
"""

import re
from typing import Any

from bs4 import BeautifulSoup, Tag

from lottopipe.services.errors import StructuralParseError
from lottopipe.types import PRIZE_TIERS

ROUND_PATTERN = re.compile(r"(?:제\s*)?(\d+)\s*회")
ISO_DATE_PATTERN = re.compile(r"(\d{4})-(\d{2})-(\d{2})")
KOREAN_DATE_PATTERN = re.compile(r"(\d{4})\s*년\s*(\d{1,2})\s*월\s*(\d{1,2})\s*일")


class DrawPageExtractor:
    """
    Extracts draw candidates from result pages.

    Usage:
        extractor = DrawPageExtractor()
        candidate = extractor.extract(html, round_hint=1100)
    """

    parser = "html.parser"

    def extract(self, html: str, round_hint: int | None = None) -> dict[str, Any]:
        """
        Extract one draw candidate.

        Args:
            html: Page content
            round_hint: Round the page was requested for, if any. The page
                must show this round.

        Returns:
            dict with round, date, numbers, bonus and prize keys
        """
        soup = BeautifulSoup(html, self.parser)
        result = soup.select_one(".win_result")
        if result is None:
            raise StructuralParseError("result block '.win_result' not found", round_hint)

        round_no = self._extract_round(result, round_hint)
        return {
            "round": round_no,
            "date": self._extract_date(result, round_no),
            "numbers": self._extract_numbers(soup, round_no),
            "bonus": self._extract_bonus(soup, round_no),
            "prize": self._extract_prize(soup, round_no),
        }

    def _extract_round(self, result: Tag, round_hint: int | None) -> int:
        heading = result.select_one("h4")
        match = ROUND_PATTERN.search(heading.get_text()) if heading else None

        if match is None:
            if round_hint is None:
                raise StructuralParseError("round label not found")
            return round_hint

        round_no = int(match.group(1))
        if round_hint is not None and round_no != round_hint:
            # The source shows its latest round for rounds it does not have yet
            raise StructuralParseError(
                f"page shows round {round_no}, expected {round_hint}", round_hint
            )
        return round_no

    def _extract_date(self, result: Tag, round_no: int) -> str:
        desc = result.select_one(".desc")
        if desc is None:
            raise StructuralParseError("draw date not found", round_no)

        text = desc.get_text()
        match = ISO_DATE_PATTERN.search(text) or KOREAN_DATE_PATTERN.search(text)
        if match is None:
            raise StructuralParseError(f"unrecognized draw date '{text.strip()}'", round_no)

        year, month, day = match.groups()
        return f"{year}-{int(month):02d}-{int(day):02d}"

    def _extract_numbers(self, soup: BeautifulSoup, round_no: int) -> list[int]:
        balls = soup.select(".nums .num.win")
        if not balls:
            raise StructuralParseError("winning numbers not found", round_no)

        numbers = []
        for ball in balls:
            # The live page groups all six balls as spans inside one element
            texts = [span.get_text(strip=True) for span in ball.select("span")]
            for text in texts or [ball.get_text(strip=True)]:
                if not text.isdigit():
                    raise StructuralParseError(f"winning number '{text}' is not numeric", round_no)
                numbers.append(int(text))
        return numbers

    def _extract_bonus(self, soup: BeautifulSoup, round_no: int) -> int:
        ball = soup.select_one(".nums .num.bonus")
        if ball is None:
            raise StructuralParseError("bonus number not found", round_no)

        digits = re.sub(r"\D", "", ball.get_text())
        if not digits:
            raise StructuralParseError("bonus number is not numeric", round_no)
        return int(digits)

    def _extract_prize(self, soup: BeautifulSoup, round_no: int) -> dict[int, dict[str, int]]:
        rows = soup.select(".tbl_data_col tbody tr")
        if len(rows) < len(PRIZE_TIERS):
            raise StructuralParseError(
                f"prize table has {len(rows)} rows, expected {len(PRIZE_TIERS)}", round_no
            )

        prize = {}
        for tier, row in zip(PRIZE_TIERS, rows):
            cells = row.find_all("td")
            if len(cells) < 4:
                raise StructuralParseError(f"prize row {tier} has {len(cells)} columns", round_no)
            prize[tier] = {
                "winners": _to_int(cells[2].get_text(), f"tier {tier} winners", round_no),
                "amount": _to_int(cells[3].get_text(), f"tier {tier} amount", round_no),
            }
        return prize


def _to_int(text: str, label: str, round_no: int) -> int:
    digits = re.sub(r"\D", "", text)
    if not digits:
        raise StructuralParseError(f"{label} is not numeric: '{text.strip()}'", round_no)
    return int(digits)
