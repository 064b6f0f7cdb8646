"""
Parsing and repair of model output into the canonical menu schema.

Model output is untrusted text. Parsing runs in three steps:

1. Strict: take the first balanced ``{...}`` block that loads as a JSON
   object with menu fields (code fences, surrounding prose and unrelated
   objects are ignored).
2. Repair, once per candidate object: drop trailing commas, cut a dangling key or truncated
   literal, close an unterminated string and close open brackets in stack
   order, then load again.
3. Normalize: coerce field types, default missing fields, synthesize item
   ids from their position, keep prices as printed and make category names
   unique.

The same raw text always produces the same menu, ids included.
"""

import json
import logging
import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional, Tuple

from menuscan.core.exceptions import ExtractionParseError
from menuscan.models.internal_models import PriceInfo
from menuscan.models.menu import ExtractedMenu, MenuCategory, MenuItem

logger = logging.getLogger(__name__)

UNTITLED = "Untitled"

_LITERAL_RE = re.compile(r'-?\d+(?:\.\d+)?(?:[eE][+-]?\d+)?|true|false|null')
_TRAILING_FENCE_RE = re.compile(r'\s*`{3,}\s*$')
_PARTIAL_UNICODE_ESCAPE_RE = re.compile(r'\\u[0-9a-fA-F]{0,3}$')
_OBJECT_START_RE = re.compile(r'\{\s*"')
_MENU_KEYS = ("categories", "restaurant_name", "restaurantName", "menu_type", "menuType")
_OPENERS = {'}': '{', ']': '['}
_CLOSERS = {'{': '}', '[': ']'}

_CURRENCY_RE = re.compile(
    r'^(?P<symbol>'
    r'(?:[A-Z]{1,3})?[$€£¥￥₩₹₫฿₱₺₽₪]'
    r'|(?:USD|EUR|GBP|JPY|CNY|RMB|KRW|TWD|HKD|SGD|AUD|CAD|CHF|NT)\b'
    r')\s*(?P<rest>.*)$'
)
_THOUSANDS_RE = re.compile(r'\d{1,3}(?:,\d{3})+(?:\.\d+)?')
_DECIMAL_COMMA_RE = re.compile(r'\d+,\d{1,2}(?!\d)')
_NUMBER_RE = re.compile(r'\d+(?:\.\d+)?')


# ---------------------------------------------------------------------------
# Step 1: locate the JSON object
# ---------------------------------------------------------------------------

def extract_json_block(text: str, start: int = 0) -> Tuple[Optional[str], bool]:
    """
    Return the first ``{...}`` block at or after ``start`` and whether it is
    balanced. An unbalanced block runs to the end of the text, minus any
    closing code fence, so the repair step can finish it.
    """
    begin = text.find('{', start)
    if begin < 0:
        return None, False

    depth = 0
    in_string = False
    escape = False
    for i in range(begin, len(text)):
        ch = text[i]
        if in_string:
            if escape:
                escape = False
            elif ch == '\\':
                escape = True
            elif ch == '"':
                in_string = False
        elif ch == '"':
            in_string = True
        elif ch in '{[':
            depth += 1
        elif ch in '}]':
            depth -= 1
            if depth == 0:
                return text[begin:i + 1], True

    return _TRAILING_FENCE_RE.sub('', text[begin:]), False


# ---------------------------------------------------------------------------
# Step 2: repair
# ---------------------------------------------------------------------------

@dataclass
class _Frame:
    kind: str                       # '{' or '['
    state: str                      # see _Repairer for the transitions
    key_start: Optional[int] = None


class _Repairer:
    """
    Single left-to-right pass over a truncated or sloppy JSON object.

    Object frames move through ``key -> in_key -> after_key -> value ->
    after_value`` and back to ``key`` on a comma. Array frames alternate
    between ``value`` and ``after_value``.
    """

    def __init__(self, text: str):
        self.text = text
        self.out: List[str] = []
        self.frames: List[_Frame] = []
        self.in_string = False
        self.escape = False
        self.token_start: Optional[int] = None

    def run(self) -> str:
        for ch in self.text:
            if self.in_string:
                self._string_char(ch)
                continue
            if ch == '"':
                self._open_string()
            elif ch in '{[':
                self.token_start = None
                self._mark_value_started()
                self.frames.append(_Frame(ch, 'key' if ch == '{' else 'value'))
                self.out.append(ch)
            elif ch in '}]':
                if not self._close_to(_OPENERS[ch]):
                    continue
                if not self.frames:
                    break
            elif ch == ':':
                self.token_start = None
                frame = self._top()
                if frame and frame.kind == '{' and frame.state == 'after_key':
                    frame.state = 'value'
                self.out.append(ch)
            elif ch == ',':
                self.token_start = None
                frame = self._top()
                if frame:
                    frame.state = 'key' if frame.kind == '{' else 'value'
                self.out.append(ch)
            else:
                if not ch.isspace() and self.token_start is None:
                    self.token_start = len(self.out)
                    self._mark_value_started()
                self.out.append(ch)

        if self.in_string:
            self._terminate_string()
        while self.frames:
            self._close_top()
        return ''.join(self.out)

    def _top(self) -> Optional[_Frame]:
        return self.frames[-1] if self.frames else None

    def _string_char(self, ch: str) -> None:
        self.out.append(ch)
        if self.escape:
            self.escape = False
        elif ch == '\\':
            self.escape = True
        elif ch == '"':
            self.in_string = False
            self._string_closed()

    def _open_string(self) -> None:
        self.token_start = None
        frame = self._top()
        if frame and frame.kind == '{' and frame.state == 'key':
            frame.key_start = len(self.out)
            frame.state = 'in_key'
        self.in_string = True
        self.out.append('"')

    def _string_closed(self) -> None:
        frame = self._top()
        if frame is None:
            return
        if frame.kind == '{' and frame.state == 'in_key':
            frame.state = 'after_key'
        elif frame.state == 'value':
            frame.state = 'after_value'

    def _mark_value_started(self) -> None:
        frame = self._top()
        if frame and frame.state == 'value' and frame.kind == '[':
            frame.state = 'after_value'

    def _terminate_string(self) -> None:
        tail = ''.join(self.out[-6:])
        partial = _PARTIAL_UNICODE_ESCAPE_RE.search(tail)
        if partial:
            del self.out[len(self.out) - len(partial.group(0)):]
            self.escape = False
        if self.escape:
            self.out.pop()
            self.escape = False
        self.out.append('"')
        self.in_string = False
        self._string_closed()

    def _close_to(self, opener: str) -> bool:
        if not any(frame.kind == opener for frame in self.frames):
            # stray closer
            return False
        while self.frames[-1].kind != opener:
            self._close_top()
        self._close_top()
        return True

    def _close_top(self) -> None:
        self._trim_dangling()
        self._strip_trailing()
        frame = self.frames.pop()
        self.out.append(_CLOSERS[frame.kind])
        parent = self._top()
        if parent and parent.state == 'value':
            parent.state = 'after_value'

    def _trim_dangling(self) -> None:
        frame = self.frames[-1]
        if self.token_start is not None:
            token = ''.join(self.out[self.token_start:]).strip()
            if not _LITERAL_RE.fullmatch(token):
                del self.out[self.token_start:]
                if frame.kind == '{':
                    frame.state = 'value'
            elif frame.kind == '{' and frame.state == 'value':
                frame.state = 'after_value'
            self.token_start = None

        if frame.kind == '{' and frame.state in ('in_key', 'after_key', 'value') and frame.key_start is not None:
            del self.out[frame.key_start:]
            frame.state = 'key'

    def _strip_trailing(self) -> None:
        while self.out and (self.out[-1].isspace() or self.out[-1] == ','):
            self.out.pop()


def repair_json(text: str) -> str:
    """Apply the bounded repair rules to a JSON object's text."""
    if '{' not in text:
        return text
    return _Repairer(text[text.index('{'):]).run()


# ---------------------------------------------------------------------------
# Step 3: field normalization
# ---------------------------------------------------------------------------

def normalize_price(value: Any) -> PriceInfo:
    """
    Normalize a printed price without ever rejecting it.

    Recognises a leading currency symbol or code and extracts a numeric
    amount when there is one; the raw text is always kept.
    """
    if value is None:
        return PriceInfo(raw="")
    if isinstance(value, bool):
        return PriceInfo(raw=str(value).lower())
    if isinstance(value, (int, float)):
        raw = str(value)
        return PriceInfo(raw=raw, amount=_to_decimal(raw))
    if isinstance(value, (list, dict)):
        return PriceInfo(raw=json.dumps(value, ensure_ascii=False))

    raw = " ".join(str(value).split())
    if not raw:
        return PriceInfo(raw="")

    currency_symbol = None
    rest = raw
    match = _CURRENCY_RE.match(raw)
    if match:
        currency_symbol = match.group('symbol')
        rest = match.group('rest')

    return PriceInfo(raw=raw, currency_symbol=currency_symbol, amount=_parse_amount(rest))


def _parse_amount(text: str) -> Optional[Decimal]:
    match = _THOUSANDS_RE.search(text)
    if match:
        return _to_decimal(match.group(0).replace(',', ''))
    match = _DECIMAL_COMMA_RE.search(text)
    if match:
        return _to_decimal(match.group(0).replace(',', '.'))
    match = _NUMBER_RE.search(text)
    if match:
        return _to_decimal(match.group(0))
    return None


def _to_decimal(text: str) -> Optional[Decimal]:
    try:
        return Decimal(text)
    except InvalidOperation:
        return None


def _clean_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, list):
        value = ", ".join(str(v).strip() for v in value if v is not None and str(v).strip())
    text = str(value).strip()
    return text or None


def _clean_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        candidates = value.split(',')
    elif isinstance(value, (list, tuple)):
        candidates = value
    else:
        candidates = [value]
    result = []
    for candidate in candidates:
        if candidate is None or isinstance(candidate, (dict, list)):
            continue
        text = str(candidate).strip()
        if text:
            result.append(text)
    return result


def _unwrap_root(data: Dict[str, Any]) -> Dict[str, Any]:
    """Accept ``{"menu": {...}}`` style wrappers around the menu object."""
    if "categories" in data:
        return data
    nested = [v for v in data.values() if isinstance(v, dict) and "categories" in v]
    if len(nested) == 1:
        return nested[0]
    return data


def _has_menu_fields(data: Dict[str, Any]) -> bool:
    return any(key in data for key in _MENU_KEYS)


def _category_list(value: Any) -> List[Any]:
    if isinstance(value, list):
        return value
    if isinstance(value, dict):
        # keyed by category name
        return [
            {"name": name, "items": items} if isinstance(items, list) else items
            for name, items in value.items()
        ]
    return []


class MenuParser:
    """Turns raw model text into a validated ExtractedMenu"""

    def parse(
        self,
        raw_response: str,
        synthesize_ids: bool = True,
        request_id: Optional[str] = None
    ) -> ExtractedMenu:
        """
        Parse, repair if needed, and normalize.

        With ``synthesize_ids`` off, every item must carry a unique id of
        its own; this is how translated output is read back.

        Raises:
            ExtractionParseError: If the text cannot be turned into a menu
        """
        data = self.load(raw_response, request_id)
        return self.build_menu(data, raw_response, synthesize_ids, request_id)

    def load(self, raw_response: str, request_id: Optional[str] = None) -> Dict[str, Any]:
        """
        Steps 1 and 2: return the decoded menu object.

        Only an object carrying at least one menu field counts; braces in
        surrounding prose and unrelated objects are skipped.
        """
        text = raw_response or ""
        if '{' not in text:
            raise ExtractionParseError(text, "no JSON object in model output")

        data = self._try_strict(text)
        if data is not None:
            return data

        data, error = self._try_repair(text)
        if data is not None:
            logger.info(
                "Model output required repair",
                extra={'request_id': request_id, 'response_length': len(text)}
            )
            return data

        logger.warning(
            f"Model output could not be repaired: {error}",
            extra={'request_id': request_id, 'response_length': len(text)}
        )
        raise ExtractionParseError(text, error)

    @staticmethod
    def _try_strict(text: str) -> Optional[Dict[str, Any]]:
        position = 0
        while True:
            block, balanced = extract_json_block(text, position)
            if block is None or not balanced:
                return None
            try:
                data = json.loads(block)
            except json.JSONDecodeError:
                data = None
            if isinstance(data, dict) and _has_menu_fields(_unwrap_root(data)):
                return _unwrap_root(data)
            position = text.index(block, position) + 1

    @staticmethod
    def _try_repair(text: str) -> Tuple[Optional[Dict[str, Any]], str]:
        """Repair each ``{"``-opened block in turn until one yields a menu."""
        error = "no menu fields in model output"
        for match in _OBJECT_START_RE.finditer(text):
            block, _ = extract_json_block(text, match.start())
            try:
                data = json.loads(repair_json(block))
            except json.JSONDecodeError as e:
                error = f"repair failed: {e.msg}"
                continue
            if isinstance(data, dict) and _has_menu_fields(_unwrap_root(data)):
                return _unwrap_root(data), error
        return None, error

    def build_menu(
        self,
        data: Dict[str, Any],
        raw_response: str = "",
        synthesize_ids: bool = True,
        request_id: Optional[str] = None
    ) -> ExtractedMenu:
        """Step 3: coerce a decoded object into an ExtractedMenu."""
        categories: List[MenuCategory] = []
        used_names = set()
        seen_ids = set()
        unpriced = 0

        raw_categories = [c for c in _category_list(data.get("categories")) if isinstance(c, dict)]
        for c_index, raw_category in enumerate(raw_categories, start=1):
            name = self._unique_name(_clean_text(raw_category.get("name")) or UNTITLED, used_names)

            raw_items = raw_category.get("items")
            if not isinstance(raw_items, list):
                raw_items = []

            items: List[MenuItem] = []
            for raw_item in raw_items:
                if isinstance(raw_item, str):
                    raw_item = {"name": raw_item}
                if not isinstance(raw_item, dict):
                    continue

                item_name = _clean_text(raw_item.get("name"))
                price = normalize_price(raw_item.get("price"))
                # read-back items carry an id and are never dropped
                if item_name is None and not price.raw and synthesize_ids:
                    continue
                if price.amount is None:
                    unpriced += 1

                i_index = len(items) + 1
                item_id = self._item_id(
                    raw_item.get("id"), c_index, i_index, seen_ids, synthesize_ids, raw_response
                )
                seen_ids.add(item_id)

                items.append(MenuItem(
                    id=item_id,
                    name=item_name or (UNTITLED if synthesize_ids else ""),
                    description=_clean_text(raw_item.get("description")),
                    price=price.raw,
                    attributes=_clean_list(raw_item.get("attributes")),
                    allergens=_clean_list(raw_item.get("allergens")),
                    flavor_profile=_clean_text(raw_item.get("flavor_profile", raw_item.get("flavorProfile"))),
                    texture=_clean_text(raw_item.get("texture")),
                ))

            categories.append(MenuCategory(name=name, items=items))

        menu = ExtractedMenu(
            restaurant_name=_clean_text(data.get("restaurant_name", data.get("restaurantName"))),
            menu_type=_clean_text(data.get("menu_type", data.get("menuType"))) or "",
            categories=categories,
        )

        logger.info(
            "Menu parsed",
            extra={
                'request_id': request_id,
                'categories': len(menu.categories),
                'items': menu.total_items,
                'items_without_numeric_price': unpriced,
            }
        )
        return menu

    @staticmethod
    def _unique_name(name: str, used_names: set) -> str:
        candidate = name
        suffix = 2
        while candidate.casefold() in used_names:
            candidate = f"{name} ({suffix})"
            suffix += 1
        used_names.add(candidate.casefold())
        return candidate

    @staticmethod
    def _item_id(
        raw_id: Any,
        c_index: int,
        i_index: int,
        seen_ids: set,
        synthesize_ids: bool,
        raw_response: str
    ) -> str:
        item_id = _clean_text(raw_id) if not isinstance(raw_id, (dict, list)) else None

        if not synthesize_ids:
            if item_id is None:
                raise ExtractionParseError(raw_response, f"item {c_index}.{i_index} has no id")
            if item_id in seen_ids:
                raise ExtractionParseError(raw_response, f"duplicate item id {item_id!r}")
            return item_id

        if item_id is not None and item_id not in seen_ids:
            return item_id

        candidate = f"item-{c_index}-{i_index}"
        suffix = 2
        while candidate in seen_ids:
            candidate = f"item-{c_index}-{i_index}-{suffix}"
            suffix += 1
        return candidate
