"""Unit-of-competency extraction from rendered catalog HTML.

Catalog pages come from several authoring templates, so every field is read
through an ordered list of strategies and the first non-empty answer wins.
Extraction never raises: a field no strategy can read is left empty, and the
identifier and title fall back to "Unknown".
"""

import logging
import re
from typing import Callable, Iterable, List, Optional, Sequence, Tuple, TypeVar
from urllib.parse import urljoin

from bs4 import BeautifulSoup, Tag

from unitsync.core.constants import CATALOG_BASE_URL, UNIT_LINK_PREFIX, UNIT_PAGE_MARKERS
from unitsync.core.errors import NotFoundError
from unitsync.core.identifiers import find_identifiers
from unitsync.core.models import (
    CompetencyRecord,
    EvidenceGroup,
    Section,
    UnitElement,
    UnitLink,
    utc_timestamp,
)

from .evidence import EVIDENCE_PREAMBLE, collapse, group_evidence, nested_list_lines, own_text

logger = logging.getLogger(__name__)

T = TypeVar("T")
Strategy = Callable[[], Optional[T]]

UNKNOWN = "Unknown"

_STATUS_VOCABULARY = ("current", "superseded", "deleted")
_RELEASE = re.compile(r"Release\s*(\d+)", re.IGNORECASE)
_PC_NUMBER = re.compile(r"^\d+\.\d+$")
_NUMERIC_ONLY = re.compile(r"^[\d.\s]+$")
_CODE_TOKEN = r"([A-Z]{2,}\w*\d{2,})"
_UOC_HEADING = re.compile(r"Unit of Competency:\s*" + _CODE_TOKEN, re.IGNORECASE)
_TITLE_HEADING = re.compile(r"Title:\s*(.+)$", re.IGNORECASE)
_CODE_TITLE_HEADING = re.compile(r"^" + _CODE_TOKEN + r"\s*[-–—]?\s*(.+)$")
_DESCRIPTION = re.compile(r"^\s*Description:\s*(.+)$", re.IGNORECASE | re.DOTALL)
_LICENSING_TAIL = re.compile(r"\n?\s*Licensing/Regulatory Information", re.IGNORECASE)

_HEADINGS = ("h2", "h3", "h4")
_MAJOR_HEADINGS = ("h2", "h3")
_CONTAINERS = ("div", "section", "article", "td")

# Labels that open a section on a unit page; used to bound full-text windows
SECTION_LABELS = (
    "Application",
    "Unit Sector",
    "Licensing/Regulatory Information",
    "Pre-requisite Unit",
    "Prerequisite Unit",
    "Prerequisites",
    "Competency Field",
    "Elements and Performance Criteria",
    "Foundation Skills",
    "Range of Conditions",
    "Unit Mapping Information",
    "Links",
    "Assessment Conditions",
    "Performance Evidence",
    "Knowledge Evidence",
    "Modification History",
    "Description",
)


def first_of(strategies: Iterable[Strategy]) -> Optional[T]:
    """Return the first non-empty strategy result.

    A strategy that trips over an unexpected page shape counts as empty.
    """
    for strategy in strategies:
        try:
            result = strategy()
        except (AttributeError, IndexError, KeyError, TypeError, ValueError) as e:
            logger.debug(f"Strategy {getattr(strategy, '__name__', strategy)!r} failed: {e}")
            continue
        if result:
            return result
    return None


def _text(el: Optional[Tag]) -> str:
    return el.get_text().strip() if el is not None else ""


def _is_heading(el: Tag, names: Sequence[str] = _HEADINGS) -> bool:
    return el.name in names


def _siblings_until(start: Tag, stop: Sequence[str]) -> Iterable[Tag]:
    current = start.find_next_sibling()
    while current is not None and current.name not in stop:
        yield current
        current = current.find_next_sibling()


def _outer_blocks(container: Tag) -> List[Tag]:
    """Paragraphs and top-level lists inside a container, in document order."""
    blocks = []
    for el in container.find_all(["p", "ul", "ol"]):
        enclosing_list = el.find_parent(["ul", "ol"])
        if enclosing_list is not None and any(parent is container for parent in enclosing_list.parents):
            continue
        blocks.append(el)
    return blocks


class UnitPage:
    """Parsed view of one catalog page with the field strategies."""

    def __init__(self, html: str, url: str):
        self.url = url
        self.soup = BeautifulSoup(html or "", "html.parser")
        root = self.soup.body or self.soup
        self._full_text = root.get_text("\n")

    # -- generic lookups ---------------------------------------------------

    def dd_for_label(self, label: str) -> Optional[Tag]:
        wanted = label.strip().lower()
        for dt in self.soup.find_all("dt"):
            if _text(dt).lower() == wanted:
                dd = dt.find_next_sibling()
                if dd is not None and dd.name == "dd":
                    return dd
                return None
        return None

    def read_dl(self, label: str) -> Optional[str]:
        text = _text(self.dd_for_label(label))
        return text or None

    def heading_exact(self, label: str, names: Sequence[str] = _HEADINGS) -> Optional[Tag]:
        wanted = label.strip().lower()
        for el in self.soup.find_all(list(names)):
            if _text(el).lower() == wanted:
                return el
        return None

    def section_paragraphs(self, label: str, names: Sequence[str] = _HEADINGS) -> Optional[str]:
        """Paragraph text following an exactly-matching heading, up to the next heading."""
        header = self.heading_exact(label, names)
        if header is None:
            return None
        texts = [_text(el) for el in _siblings_until(header, _HEADINGS) if el.name == "p" and _text(el)]
        return "\n\n".join(texts) or None

    def text_window(self, label: str, limit: Optional[int] = None) -> Optional[str]:
        """Full-text fallback: text after a label line, up to the next section label line.

        Runs to the end of the page when no later label is found.
        """
        boundaries = "|".join(re.escape(lbl) for lbl in SECTION_LABELS if lbl.lower() != label.lower())
        pattern = re.compile(
            r"(?:^|\n)[ \t]*" + re.escape(label) + r"[ \t]*:?[ \t]*\n(.+?)"
            r"(?=\n[ \t]*(?:" + boundaries + r")[ \t]*:?[ \t]*(?:\n|\Z)|\Z)",
            re.IGNORECASE | re.DOTALL,
        )
        match = pattern.search(self._full_text)
        if not match:
            return None
        text = collapse(match.group(1))
        if limit is not None:
            text = text[:limit]
        return text or None

    # -- identity ------------------------------------------------------------

    def identity_from_hero(self) -> Optional[Tuple[str, str]]:
        hero = self.soup.select_one(".heroSubheading .title")
        if hero is None:
            return None
        code = _text(hero.find("strong"))
        full = collapse(hero.get_text(" "))
        if not code or not full:
            return None
        title = collapse(full.replace(code, "", 1))
        return code, title or UNKNOWN

    def identity_from_uoc_heading(self) -> Optional[Tuple[str, str]]:
        match = _UOC_HEADING.search(_text(self.soup.find("h1")))
        if not match:
            return None
        title_match = _TITLE_HEADING.search(_text(self.soup.find("h2")))
        title = title_match.group(1).strip() if title_match else ""
        return match.group(1), title or UNKNOWN

    def identity_from_code_heading(self) -> Optional[Tuple[str, str]]:
        match = _CODE_TITLE_HEADING.match(collapse(_text(self.soup.find("h1"))))
        if not match:
            return None
        return match.group(1), match.group(2).strip()

    # -- status and release ----------------------------------------------------

    def status(self) -> Optional[str]:
        status = None
        for pill in self.soup.select(".mint-pill"):
            text = _text(pill).lower()
            if text in _STATUS_VOCABULARY:
                status = text.capitalize()
        return status

    def release_from_label(self) -> Optional[str]:
        label = self.soup.select_one(".release-label")
        if label is None:
            return None
        scope = label.parent if label.parent is not None else label
        match = _RELEASE.search(scope.get_text(" "))
        return f"Release {match.group(1)}" if match else None

    def release_from_text(self) -> Optional[str]:
        match = _RELEASE.search(self._full_text)
        return f"Release {match.group(1)}" if match else None

    # -- supersession ------------------------------------------------------------

    def supersession(self) -> Tuple[Optional[UnitLink], Optional[UnitLink]]:
        superseded_by: Optional[UnitLink] = None
        supersedes: Optional[UnitLink] = None
        catalog_prefix = CATALOG_BASE_URL + UNIT_LINK_PREFIX

        for a in self.soup.find_all("a", href=True):
            href = a["href"].strip()
            if not (href.startswith(UNIT_LINK_PREFIX) or href.startswith(catalog_prefix)):
                continue
            codes = find_identifiers(_text(a))
            if not codes:
                continue
            link = UnitLink(code=codes[0], url=urljoin(CATALOG_BASE_URL, href))
            context = (a.parent.get_text(" ") if a.parent is not None else "").lower()

            if "superseded by" in context:
                if superseded_by is None:
                    superseded_by = link
            elif "supersedes" in context or "supersedes:" in _text(a).lower():
                if supersedes is None:
                    supersedes = link

        return superseded_by, supersedes

    # -- elements and performance criteria -------------------------------------

    def criteria_table(self) -> Optional[Tag]:
        for table in self.soup.find_all("table"):
            text = table.get_text().lower()
            if "elements" in text and "performance criteria" in text:
                return table
        return None

    @staticmethod
    def _criteria_from_cell(td: Tag) -> List[str]:
        items = [collapse(li.get_text(" ")) for li in td.find_all("li")]
        items = [item for item in items if item]
        if items:
            return items
        lines = (line.strip() for line in td.get_text("\n").split("\n"))
        return [line for line in lines if len(line) > 5]

    def elements(self) -> List[UnitElement]:
        table = self.criteria_table()
        if table is None:
            return []

        parsed: List[Tuple[str, List[str]]] = []
        current: Optional[Tuple[str, List[str]]] = None

        rows = table.select("tbody tr") or table.find_all("tr")
        for tr in rows:
            tds = tr.find_all("td", recursive=False)
            if len(tds) < 2:
                continue
            cells = [collapse(td.get_text(" ")) for td in tds]
            if "elements describe" in cells[0].lower():
                continue
            # Header rows written with td cells
            if cells[0].lower() in ("element", "elements") and "performance criteria" in cells[1].lower():
                continue

            if len(cells) == 2:
                first, second = cells
                if not first or not second:
                    continue
                if _NUMERIC_ONLY.match(first):
                    if current is not None:
                        current[1].append(f"{first} {second}")
                    continue
                current = (first, self._criteria_from_cell(tds[1]))
                parsed.append(current)

            elif len(cells) == 3:
                first, number, text = cells
                if first and not _NUMERIC_ONLY.match(first):
                    current = (first, [])
                    parsed.append(current)
                    if _PC_NUMBER.match(number) and text:
                        current[1].append(f"{number} {text}")
                elif current is not None:
                    if _PC_NUMBER.match(number) and text:
                        current[1].append(f"{number} {text}")
                    elif first:
                        current[1].append(" ".join(c for c in cells if c))

            elif len(cells) == 4 and current is not None:
                number, text = cells[2], cells[3]
                if number and text and _PC_NUMBER.match(number):
                    current[1].append(f"{number} {text}")

        return [UnitElement(element=name, performance_criteria=criteria) for name, criteria in parsed]

    # -- evidence ------------------------------------------------------------------

    @staticmethod
    def _block_lines(block: Tag) -> List[str]:
        if block.name in ("ul", "ol"):
            return nested_list_lines(block)
        text = collapse(block.get_text(" "))
        if text and EVIDENCE_PREAMBLE not in text.lower():
            return [text]
        return []

    def _container_lines(self, container: Tag) -> List[str]:
        lines: List[str] = []
        for block in _outer_blocks(container):
            lines.extend(self._block_lines(block))
        return lines

    def evidence_from_dl(self, label: str) -> Optional[List[str]]:
        dd = self.dd_for_label(label)
        if dd is None:
            return None
        lines = self._container_lines(dd)
        if not lines:
            lines = [line.strip() for line in dd.get_text("\n").split("\n") if line.strip()]
        return lines or None

    def evidence_from_heading(self, keywords: Sequence[str]) -> Optional[List[str]]:
        def is_candidate(el: Tag) -> bool:
            classes = set(el.get("class") or [])
            return el.name in _HEADINGS or {"mt-6", "mb-2"} <= classes

        header = None
        for el in self.soup.find_all(is_candidate):
            text = _text(el).lower()
            if all(kw in text for kw in keywords):
                header = el
                break
        if header is None:
            return None

        lines: List[str] = []
        for current in _siblings_until(header, _MAJOR_HEADINGS):
            if current.name in ("p", "ul", "ol"):
                lines.extend(self._block_lines(current))
            elif current.name == "table" or current.find("table") is not None:
                table = current if current.name == "table" else current.find("table")
                for p in table.find_all("p"):
                    lines.extend(self._block_lines(p))
                main_list = table.select_one("tbody tr td > ul, tbody tr td > ol, tr td > ul, tr td > ol")
                if main_list is not None:
                    lines.extend(nested_list_lines(main_list))
            elif current.name == "div":
                lines.extend(self._container_lines(current))
        return lines or None

    def evidence_from_scan(self, phrases: Sequence[str]) -> Optional[List[str]]:
        anchor = self.soup.find(string=lambda s: s is not None and any(p in s.lower() for p in phrases))
        if anchor is None or anchor.parent is None:
            return None
        parent = anchor.parent
        container = parent if parent.name in _CONTAINERS else parent.find_parent(list(_CONTAINERS))
        if container is None:
            return None
        lines = []
        for block in _outer_blocks(container):
            if block.name == "p":
                text = collapse(block.get_text(" "))
                if text:
                    lines.append(text)
            else:
                lines.extend(nested_list_lines(block))
        return lines or None

    def evidence(self, label: str, keywords: Sequence[str], fallback: Sequence[str]) -> List[EvidenceGroup]:
        lines = first_of([
            lambda: self.evidence_from_dl(label),
            lambda: self.evidence_from_heading(keywords),
            lambda: self.evidence_from_scan(fallback),
        ])
        return group_evidence(lines) if lines else []

    # -- labeled text fields -----------------------------------------------------------

    def assessment_conditions(self) -> Optional[str]:
        def from_heading() -> Optional[str]:
            header = self.heading_exact("Assessment Conditions")
            if header is None:
                return None
            parts = []
            for current in _siblings_until(header, _MAJOR_HEADINGS):
                if current.name == "p" and _text(current):
                    parts.append(_text(current))
                elif current.name in ("ul", "ol"):
                    items = [f"• {collapse(li.get_text(' '))}" for li in current.find_all("li")]
                    if items:
                        parts.append("\n".join(items))
            return "\n\n".join(parts) or None

        return first_of([
            lambda: self.read_dl("Assessment Conditions"),
            from_heading,
            lambda: self.text_window("Assessment Conditions", limit=2000),
        ])

    def licensing(self) -> Optional[str]:
        label = "Licensing/Regulatory Information"
        return first_of([
            lambda: self.read_dl(label),
            lambda: self.section_paragraphs(label, names=_HEADINGS + ("strong",)),
            lambda: self.text_window(label, limit=500),
        ])

    def application(self) -> Optional[str]:
        raw = first_of([
            lambda: self.read_dl("Application"),
            lambda: self.section_paragraphs("Application"),
            lambda: self.text_window("Application"),
        ])
        if not raw:
            return None
        cleaned = _LICENSING_TAIL.split(raw, maxsplit=1)[0].strip()
        return cleaned or None

    def unit_sector(self) -> Optional[str]:
        return first_of([
            lambda: self.read_dl("Unit Sector"),
            lambda: self.section_paragraphs("Unit sector"),
            lambda: self.text_window("Unit Sector", limit=500),
        ])

    def foundation_skills(self) -> Optional[str]:
        return first_of([
            lambda: self.read_dl("Foundation Skills"),
            lambda: self.section_paragraphs("Foundation skills"),
        ])

    def prerequisites(self) -> List[str]:
        raw = first_of([
            lambda: self.read_dl("Prerequisite Unit"),
            lambda: self.read_dl("Prerequisites"),
            lambda: self.read_dl("Pre-requisite Unit"),
            lambda: self.section_paragraphs("Pre-requisite unit"),
            lambda: self.text_window("Pre-requisite Unit", limit=500),
        ])
        return find_identifiers(raw) if raw else []

    def description(self) -> Optional[str]:
        def from_paragraph() -> Optional[str]:
            for p in self.soup.find_all("p"):
                match = _DESCRIPTION.match(_text(p))
                if match:
                    return collapse(match.group(1))
            return None

        return first_of([
            lambda: self.read_dl("Description"),
            from_paragraph,
            lambda: self.text_window("Description", limit=2000),
        ])

    # -- generic sections ------------------------------------------------------------------

    def sections(self) -> List[Section]:
        sections = []
        for heading in self.soup.find_all(list(_HEADINGS)):
            title = collapse(heading.get_text(" "))
            if not title:
                continue
            paragraphs: List[str] = []
            lists: List[List[str]] = []
            for current in _siblings_until(heading, _HEADINGS):
                if current.name == "p":
                    text = collapse(current.get_text(" "))
                    if text:
                        paragraphs.append(text)
                elif current.name in ("ul", "ol"):
                    items = [own_text(li) for li in current.find_all("li", recursive=False)]
                    items = [item for item in items if item]
                    if items:
                        lists.append(items)
            sections.append(Section(heading=title, level=int(heading.name[1]), paragraphs=paragraphs, lists=lists))
        return sections


def parse_unit_html(html: str, url: str) -> CompetencyRecord:
    """
    Convert a rendered unit page into a CompetencyRecord.

    Args:
        html: Rendered page HTML (may be empty or malformed)
        url: Source URL recorded on the record

    Returns:
        CompetencyRecord; unreadable fields are None or empty
    """
    page = UnitPage(html, url)

    code, title = first_of([
        page.identity_from_hero,
        page.identity_from_uoc_heading,
        page.identity_from_code_heading,
    ]) or (UNKNOWN, UNKNOWN)

    superseded_by, supersedes = first_of([page.supersession]) or (None, None)

    record = CompetencyRecord(
        url=url,
        code=code or UNKNOWN,
        title=title or UNKNOWN,
        description=page.description(),
        status=first_of([page.status]),
        release=first_of([page.release_from_label, page.release_from_text]),
        application=page.application(),
        unit_sector=page.unit_sector(),
        licensing=page.licensing(),
        prerequisites=first_of([page.prerequisites]) or [],
        elements=first_of([page.elements]) or [],
        foundation_skills=page.foundation_skills(),
        assessment_conditions=page.assessment_conditions(),
        performance_evidence=page.evidence(
            "Performance Evidence",
            keywords=("performance", "evidence"),
            fallback=("evidence required to demonstrate competence",),
        ),
        knowledge_evidence=page.evidence(
            "Knowledge Evidence",
            keywords=("knowledge", "evidence"),
            fallback=("evidence of the ability", "evidence of knowledge"),
        ),
        superseded_by=superseded_by,
        supersedes=supersedes,
        sections=first_of([page.sections]) or [],
        last_fetched_at=utc_timestamp(),
    )

    logger.debug(
        f"Parsed {record.code}: {len(record.elements)} elements, {record.criteria_count} criteria, "
        f"{len(record.performance_evidence)} PE / {len(record.knowledge_evidence)} KE groups"
    )
    return record


def looks_like_unit_page(html: str) -> bool:
    """True when the page carries unit-of-competency content."""
    return any(marker in html for marker in UNIT_PAGE_MARKERS)


def check_unit_page(html: str, code: str = "") -> None:
    """Validate a fetched page before extraction.

    Raises:
        NotFoundError: The page is a not-found page or has no unit content
    """
    if looks_like_unit_page(html):
        return
    if "404" in html or "not found" in html:
        raise NotFoundError(code, "Unit does not exist (404)")
    raise NotFoundError(code, "No unit content detected")
