"""
Tests for the contact extraction cascades.
"""
from scrapers.contact_extractor import ContactExtractor, contact_block_lines

extractor = ContactExtractor()

CONTACT_BLOCK = """Stellenbeschreibung
Wir suchen Verstärkung.
Kontaktadresse
Musterfirma GmbH
Frau Erika Mustermann
Hauptstraße 12
10115 Berlin
Bewerben Sie sich
Online über das Portal
"""


def test_mailto_link_wins():
    html = '<p>Schreiben Sie an <a href="mailto:jobs@musterfirma.de?subject=Bewerbung">uns</a></p>'
    contact = extractor.extract(html, refnr="REF-1", page_text="Schreiben Sie an uns\nE-Mail: other@firma.de")
    assert contact.email == "jobs@musterfirma.de"


def test_mailto_only_page_has_email_and_no_phone():
    html = '<html><body><a href="mailto:jane@example-company.test">Jane</a></body></html>'
    contact = extractor.extract(html, refnr="REF-1")
    assert contact.email == "jane@example-company.test"
    assert contact.phone is None
    assert "telefon" not in contact.to_dict()


def test_labelled_phone():
    contact = extractor.extract("<html></html>", page_text="Ansprechpartner\nTelefon: 030 1234567\n")
    assert contact.phone == "030 1234567"


def test_tel_link_matching_reference_number_is_ignored():
    refnr = "10000-1198765432-S"
    html = f'<a href="tel:{refnr}">Referenz</a>'
    contact = extractor.extract(html, refnr=refnr, page_text="Referenz\nTel: +49 30 9876543")
    assert contact.phone == "+49 30 9876543"


def test_tel_link_used_when_present():
    html = '<a href="tel:+49 40 555 0101">Anrufen</a>'
    contact = extractor.extract(html, refnr="REF-1", page_text="Anrufen")
    assert contact.phone == "+49 40 555 0101"


def test_country_code_fallback():
    text = "Rufen Sie an unter +49 89 1234 5678 oder schreiben Sie uns"
    contact = extractor.extract("<html></html>", page_text=text)
    assert contact.phone == "+49 89 1234 5678"


def test_denylisted_emails_are_skipped():
    text = "Muster: info@example.com\nBewerbung bitte an kontakt@firma.de"
    contact = extractor.extract("<html></html>", page_text=text)
    assert contact.email == "kontakt@firma.de"


def test_only_denylisted_emails_gives_none():
    contact = extractor.extract("<html></html>", page_text="E-Mail: noreply@firma.de")
    assert contact.email is None


def test_contact_block_name_and_address():
    contact = extractor.extract("<html></html>", refnr="REF-1", page_text=CONTACT_BLOCK)

    assert contact.name == "Musterfirma GmbH - Frau Erika Mustermann"
    assert contact.address.to_dict() == {"strasse": "Hauptstraße 12", "plz": "10115", "ort": "Berlin"}


def test_contact_block_stops_at_next_heading():
    lines = contact_block_lines(CONTACT_BLOCK)
    assert lines == ["Musterfirma GmbH", "Frau Erika Mustermann", "Hauptstraße 12", "10115 Berlin"]


def test_name_skips_contact_lines():
    text = "Kontaktadresse\nE-Mail: hr@firma.de\nFirma ABC\nSonstige Angaben"
    contact = extractor.extract("<html></html>", page_text=text)
    assert contact.name == "Firma ABC"
    assert contact.email == "hr@firma.de"


def test_page_text_derived_from_html():
    html = """
    <div>
      <h3>Kontaktadresse</h3>
      <p>Firma ABC</p>
      <p>E-Mail: bewerbung@abc.de</p>
    </div>
    """
    contact = extractor.extract(html)
    assert contact.name == "Firma ABC"
    assert contact.email == "bewerbung@abc.de"


def test_page_without_contact_data_is_empty():
    contact = extractor.extract("<html><body><p>Keine Angaben</p></body></html>")
    assert contact.is_empty()
    assert contact.to_dict() == {}
