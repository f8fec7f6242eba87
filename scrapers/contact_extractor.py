"""
contact_extractor.py — Best-effort contact details from a rendered job detail page.

Detail pages are free text with inconsistent markup, so every field is an
ordered cascade of small rules. Each rule takes (page_text, soup, refnr) and
returns a value or None; the first plausible value wins. A rule miss is never
an error.
"""

import re
from typing import Callable, Optional

from bs4 import BeautifulSoup

from models import Address, ContactInfo
from monitoring import get_logger

logger = get_logger("scrapers.contact_extractor")

Rule = Callable[[str, BeautifulSoup, str], Optional[str]]

EMAIL_RE = re.compile(r"\b([a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,})\b")
LABELED_EMAIL_RE = re.compile(r"E-?Mail\s*:\s*([a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,})", re.IGNORECASE)

# Placeholder, test and no-reply addresses that show up in page chrome
EMAIL_DENYLIST = ["example", "test.de", "@w3.org", "noreply", "no-reply"]

LABELED_PHONE_RE = re.compile(r"\b(?:Mobil|Telefon|Tel|Fon|Phone)\s*:\s*([+\d][\d \t/()-]{7,})", re.IGNORECASE)
COUNTRY_PHONE_RE = re.compile(r"\+49[\d \t/()-]{6,}")

# Headings that delimit the contact-address block
CONTACT_HEADING = "Kontaktadresse"
NEXT_HEADINGS = ["Bewerben Sie sich", "Kontaktaufnahme", "Sonstige Angaben", "Bewerbungsform"]
CONTACT_BLOCK_MAX_CHARS = 400

POSTAL_CITY_RE = re.compile(r"\b(\d{5})[ \t]+([A-Za-zÄÖÜäöüß][A-Za-zÄÖÜäöüß \t.()/-]*)")
STREET_RE = re.compile(r"^([A-Za-zÄÖÜäöüß][A-Za-zÄÖÜäöüß .'-]*\.?\s+\d+\s?[a-zA-Z]?(?:\s?-\s?\d+[a-zA-Z]?)?)$")
CONTACT_LINE_MARKERS = ["@", "Mobil:", "Tel:", "Telefon:", "Fon:", "Phone:", "+49", "E-Mail", "Fax:"]


def normalize_whitespace(value: str) -> str:
    return re.sub(r"\s+", " ", value).strip()


def _email_allowed(email: str) -> bool:
    lowered = email.lower()
    return len(email) > 5 and not any(bad in lowered for bad in EMAIL_DENYLIST)


# --- Email rules ---

def email_from_mailto(text: str, soup: BeautifulSoup, refnr: str) -> Optional[str]:
    for link in soup.select('a[href^="mailto:"]'):
        address = link.get("href", "")[len("mailto:"):].split("?")[0].strip()
        if "@" in address:
            return address
    return None


def email_from_label(text: str, soup: BeautifulSoup, refnr: str) -> Optional[str]:
    for match in LABELED_EMAIL_RE.finditer(text):
        email = match.group(1).strip()
        if _email_allowed(email):
            return email
    return None


def email_from_text(text: str, soup: BeautifulSoup, refnr: str) -> Optional[str]:
    for match in EMAIL_RE.finditer(text):
        email = match.group(1)
        if _email_allowed(email):
            return email
    return None


# --- Phone rules ---

def _phone_allowed(phone: str, refnr: str, min_len: int, max_len: int) -> bool:
    if refnr and refnr in phone:
        return False
    return min_len <= len(phone) < max_len


def phone_from_tel_link(text: str, soup: BeautifulSoup, refnr: str) -> Optional[str]:
    for link in soup.select('a[href^="tel:"]'):
        phone = normalize_whitespace(link.get("href", "")[len("tel:"):])
        if phone and not (refnr and refnr in phone):
            return phone
    return None


def phone_from_label(text: str, soup: BeautifulSoup, refnr: str) -> Optional[str]:
    for match in LABELED_PHONE_RE.finditer(text):
        phone = normalize_whitespace(match.group(1)).rstrip("/-( ")
        if _phone_allowed(phone, refnr, 8, 30):
            return phone
    return None


def phone_from_country_code(text: str, soup: BeautifulSoup, refnr: str) -> Optional[str]:
    for match in COUNTRY_PHONE_RE.finditer(text):
        phone = normalize_whitespace(match.group(0)).rstrip("/-( ")
        if _phone_allowed(phone, refnr, 10, 25):
            return phone
    return None


# --- Name and address ---

def contact_block_lines(text: str) -> list[str]:
    """Lines between the contact-address heading and the next known heading."""
    start = text.find(CONTACT_HEADING)
    if start < 0:
        return []
    block = text[start + len(CONTACT_HEADING):]
    end = len(block)
    for heading in NEXT_HEADINGS:
        idx = block.find(heading)
        if 0 <= idx < end:
            end = idx
    block = block[:min(end, CONTACT_BLOCK_MAX_CHARS)]
    lines = [line.strip() for line in block.splitlines()]
    return [line for line in lines if 2 < len(line) < 100]


def _is_contact_line(line: str) -> bool:
    return any(marker in line for marker in CONTACT_LINE_MARKERS)


def _is_address_line(line: str) -> bool:
    return bool(POSTAL_CITY_RE.search(line) or STREET_RE.match(line))


def name_from_contact_block(text: str, soup: BeautifulSoup, refnr: str) -> Optional[str]:
    parts = []
    for line in contact_block_lines(text)[:2]:
        if _is_address_line(line):
            break
        if not _is_contact_line(line):
            parts.append(line)
    return " - ".join(parts) if parts else None


def address_from_contact_block(text: str, soup: BeautifulSoup, refnr: str) -> Optional[Address]:
    lines = contact_block_lines(text)
    for i, line in enumerate(lines):
        match = POSTAL_CITY_RE.search(line)
        if not match:
            continue
        address = Address(postal_code=match.group(1), city=normalize_whitespace(match.group(2)))
        for previous in reversed(lines[:i]):
            street = STREET_RE.match(previous)
            if street:
                address.street = street.group(1).strip()
                break
        return address
    return None


EMAIL_RULES: list[Rule] = [email_from_mailto, email_from_label, email_from_text]
PHONE_RULES: list[Rule] = [phone_from_tel_link, phone_from_label, phone_from_country_code]
NAME_RULES: list[Rule] = [name_from_contact_block]
ADDRESS_RULES = [address_from_contact_block]


def first_match(rules, text: str, soup: BeautifulSoup, refnr: str, field_name: str):
    for rule in rules:
        value = rule(text, soup, refnr)
        if value:
            logger.debug(f"{field_name}: matched by {rule.__name__}")
            return value
    logger.debug(f"{field_name}: no rule matched")
    return None


class ContactExtractor:
    def extract(self, html: str, refnr: str = "", page_text: Optional[str] = None) -> ContactInfo:
        """
        Run every field cascade against the page. `page_text` should be the
        rendered text (line breaks preserved); it is derived from `html` if omitted.
        """
        soup = BeautifulSoup(html or "", "html.parser")
        if page_text is None:
            page_text = soup.get_text("\n")

        contact = ContactInfo(
            name=first_match(NAME_RULES, page_text, soup, refnr, "name"),
            phone=first_match(PHONE_RULES, page_text, soup, refnr, "phone"),
            email=first_match(EMAIL_RULES, page_text, soup, refnr, "email"),
            address=first_match(ADDRESS_RULES, page_text, soup, refnr, "address"),
        )

        found = [name for name, value in contact.to_dict().items() if value]
        logger.info(f"Extracted contact fields for {refnr or 'page'}: {', '.join(found) or 'none'}")
        return contact
