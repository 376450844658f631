"""
Citation formatting for APA, MLA, Chicago and IEEE reference strings.

Formatting happens once, when a Citation is built; the stored strings are what
the editor and the LaTeX bibliography display.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from backend.shared.models import Citation, CitationType, FormattedCitations

logger = logging.getLogger(__name__)


@dataclass
class AuthorName:
    """An author name split into the parts the styles need."""
    last: str
    first: str = ""
    middle: str = ""

    @classmethod
    def parse(cls, name: str) -> "AuthorName":
        """
        Parse "Last, First Middle" or "First Middle Last".

        Single-token names (organisations, mononyms) are kept as the last name.
        """
        name = name.strip()
        if "," in name:
            last, rest = name.split(",", 1)
            parts = rest.split()
            return cls(
                last=last.strip(),
                first=parts[0] if parts else "",
                middle=" ".join(parts[1:])
            )
        parts = name.split()
        if len(parts) <= 1:
            return cls(last=name)
        return cls(last=parts[-1], first=parts[0], middle=" ".join(parts[1:-1]))

    @property
    def initials(self) -> str:
        """Initials of the given names, e.g. "E. F."."""
        names = [self.first] + self.middle.split()
        return " ".join(f"{n[0]}." for n in names if n)

    @property
    def inverted(self) -> str:
        """"Last, First Middle"."""
        given = " ".join(p for p in [self.first, self.middle] if p)
        return f"{self.last}, {given}" if given else self.last

    @property
    def natural(self) -> str:
        """"First Middle Last"."""
        return " ".join(p for p in [self.first, self.middle, self.last] if p)


def _year(published: Optional[datetime]) -> str:
    return str(published.year) if published else "n.d."


def _join(parts: List[str], final: str) -> str:
    if not parts:
        return ""
    if len(parts) == 1:
        return parts[0]
    if len(parts) == 2:
        return f"{parts[0]} {final} {parts[1]}"
    return ", ".join(parts[:-1]) + f", {final} {parts[-1]}"


def _trail(url: Optional[str], doi: Optional[str]) -> str:
    if doi:
        return f" https://doi.org/{doi}"
    if url:
        return f" {url}"
    return ""


def format_apa(authors: List[AuthorName], title: str, published: Optional[datetime],
               publisher: Optional[str], url: Optional[str], doi: Optional[str]) -> str:
    """APA 7: Last, F. M., & Last, F. (Year). Title. Publisher. Link"""
    names = [f"{a.last}, {a.initials}" if a.initials else a.last for a in authors]
    if len(names) > 1:
        author_part = ", ".join(names[:-1]) + f", & {names[-1]}"
    else:
        author_part = names[0] if names else ""
    head = f"{author_part} ({_year(published)})." if author_part else f"{title}. ({_year(published)})."
    body = f" {title}." if author_part else ""
    pub = f" {publisher}." if publisher else ""
    return f"{head}{body}{pub}{_trail(url, doi)}".strip()


def format_mla(authors: List[AuthorName], title: str, published: Optional[datetime],
               publisher: Optional[str], url: Optional[str], doi: Optional[str]) -> str:
    """MLA 9: Last, First, and First Last. "Title." Publisher, Year."""
    if not authors:
        author_part = ""
    elif len(authors) == 1:
        author_part = f"{authors[0].inverted}. "
    elif len(authors) == 2:
        author_part = f"{authors[0].inverted}, and {authors[1].natural}. "
    else:
        author_part = f"{authors[0].inverted}, et al. "
    tail = ", ".join(p for p in [publisher, str(published.year) if published else None] if p)
    tail = f" {tail}." if tail else ""
    return f'{author_part}"{title}."{tail}{_trail(url, doi)}'.strip()


def format_chicago(authors: List[AuthorName], title: str, published: Optional[datetime],
                   publisher: Optional[str], url: Optional[str], doi: Optional[str]) -> str:
    """Chicago author-date: Last, First, and First Last. Year. "Title." Publisher."""
    names = [authors[0].inverted] + [a.natural for a in authors[1:]] if authors else []
    author_part = _join(names, "and")
    head = f"{author_part}. {_year(published)}." if author_part else f"{_year(published)}."
    pub = f" {publisher}." if publisher else ""
    return f'{head} "{title}."{pub}{_trail(url, doi)}'.strip()


def format_ieee(authors: List[AuthorName], title: str, published: Optional[datetime],
                publisher: Optional[str], url: Optional[str], doi: Optional[str]) -> str:
    """IEEE: F. M. Last and F. Last, "Title," Publisher, Year."""
    names = [f"{a.initials} {a.last}".strip() for a in authors]
    if len(names) > 6:
        author_part = f"{names[0]} et al."
    else:
        author_part = _join(names, "and")
    tail = ", ".join(p for p in [publisher, str(published.year) if published else None] if p)
    lead = f"{author_part}, " if author_part else ""
    text = f'{lead}"{title}," {tail}.' if tail else f'{lead}"{title}."'
    return f"{text}{_trail(url, doi)}".strip()


def build_citation(
    citation_type: CitationType,
    title: str,
    authors: Optional[List[str]] = None,
    url: Optional[str] = None,
    published_date: Optional[datetime] = None,
    publisher: Optional[str] = None,
    doi: Optional[str] = None,
) -> Citation:
    """
    Build a Citation with its four reference strings computed up front.

    Args:
        citation_type: Kind of source
        title: Title of the work
        authors: Author names in "Last, First" or "First Last" form
        url: Optional link to the source
        published_date: Optional publication date
        publisher: Optional publisher, journal or site name
        doi: Optional DOI (takes precedence over url in the link)

    Returns:
        Frozen Citation model
    """
    authors = [a for a in (authors or []) if a and a.strip()]
    parsed = [AuthorName.parse(a) for a in authors]
    args = (parsed, title.strip(), published_date, publisher, url, doi)

    formatted = FormattedCitations(
        apa=format_apa(*args),
        mla=format_mla(*args),
        chicago=format_chicago(*args),
        ieee=format_ieee(*args),
    )
    logger.debug(f"Formatted {citation_type.value} citation: {title[:80]}")

    return Citation(
        type=citation_type,
        title=title.strip(),
        authors=authors,
        url=url,
        published_date=published_date,
        publisher=publisher,
        doi=doi,
        formatted=formatted,
    )
