"""
Tests for open-data CSV helpers.
"""
from apoios.ingest.open_data import (
    detect_delimiter,
    extract_catalog_resource_urls,
    is_likely_csv_resource,
    normalize_website,
    parse_csv_table,
    resolve_header_row,
)


class TestCsvParsing:
    """Tests for delimiter detection and table parsing."""

    def test_semicolon_detected(self):
        assert detect_delimiter(["Município;Website", "Óbidos;www.cm-obidos.pt"]) == ";"

    def test_tab_detected(self):
        assert detect_delimiter(["Município\tWebsite", "Óbidos\twww.cm-obidos.pt"]) == "\t"

    def test_comma_detected(self):
        assert detect_delimiter(["a,b,c", "1,2,3"]) == ","

    def test_tie_prefers_semicolon(self):
        assert detect_delimiter(["a;b,c"]) == ";"

    def test_bom_quotes_and_blank_lines(self):
        text = "\ufeff" + 'Município;Website\r\n\r\n"Vila Nova de Gaia; Porto";"www.cm-gaia.pt"\n'
        rows = parse_csv_table(text)
        assert rows == [["Município", "Website"], ["Vila Nova de Gaia; Porto", "www.cm-gaia.pt"]]

    def test_empty_text(self):
        assert parse_csv_table("") == []


class TestHeaderDetection:
    """Tests for resolve_header_row."""

    def test_header_after_preamble(self):
        rows = [
            ["Listagem dos municípios portugueses"],
            ["Revisão 2025", ""],
            ["Distrito", "Concelho", "Sítio Web"],
            ["Leiria", "Óbidos", "www.cm-obidos.pt"],
        ]
        header = resolve_header_row(rows)
        assert (header.row_index, header.municipality_index, header.website_index) == (2, 1, 2)

    def test_no_header(self):
        assert resolve_header_row([["a", "b"], ["c", "d"]]) is None


class TestWebsiteNormalization:
    """Tests for normalize_website."""

    def test_scheme_added(self):
        assert normalize_website("www.cm-obidos.pt") == "https://www.cm-obidos.pt"

    def test_existing_scheme_kept(self):
        assert normalize_website("http://www.cm-obidos.pt/") == "http://www.cm-obidos.pt/"

    def test_invalid_values(self):
        assert normalize_website("") is None
        assert normalize_website("   ") is None
        assert normalize_website(None) is None
        assert normalize_website("ftp://cm-obidos.pt") is None
        assert normalize_website("sem site") is None


class TestCatalog:
    """Tests for catalog resource helpers."""

    def test_urls_collected_from_nested_payload(self):
        payload = {
            "title": "Municípios portugueses",
            "page": "https://dados.gov.pt/pt/datasets/municipios/",
            "resources": [
                {"format": "csv", "url": "https://dados.gov.pt/s/resources/a.csv"},
                {"format": "json", "latest": "https://dados.gov.pt/pt/datasets/r/123"},
                {"url": "https://dados.gov.pt/s/resources/a.csv"},
            ],
        }
        assert extract_catalog_resource_urls(payload) == [
            "https://dados.gov.pt/s/resources/a.csv",
            "https://dados.gov.pt/pt/datasets/r/123",
        ]

    def test_csv_like_resources(self):
        assert is_likely_csv_resource("https://x.pt/a.csv")
        assert is_likely_csv_resource("https://dados.gov.pt/pt/datasets/r/123")
        assert is_likely_csv_resource("https://x.pt/download", "text/csv")
        assert not is_likely_csv_resource("https://x.pt/a.json", "json")
