"""Tests for HTML main-content extraction."""

from pipelines.html_extract import extract_page, infer_type

from conftest import LONG_TEXT, page_html


class TestExtractPage:
    """Test suite for extract_page."""

    def test_main_content_without_boilerplate(self):
        page = extract_page(page_html("Our Approach", LONG_TEXT))

        assert page is not None
        assert page.title == "Our Approach"
        assert LONG_TEXT in page.content
        assert "Home | About" not in page.content
        assert "Copyright" not in page.content

    def test_thin_page_rejected(self):
        assert extract_page(page_html("Tiny", "Too short.")) is None

    def test_custom_selectors(self):
        html = (
            "<html><head><title>Site</title></head><body>"
            "<div class='headline'>Custom Title</div>"
            "<div class='body-copy'>" + LONG_TEXT + "</div>"
            "<div class='ads'>Buy now buy now buy now buy now buy now buy now</div>"
            "</body></html>"
        )
        page = extract_page(html, content_selector='.body-copy', title_selector='.headline')

        assert page.title == "Custom Title"
        assert page.content == LONG_TEXT

    def test_falls_back_to_body_and_head_title(self):
        html = (
            "<html><head><title> Plain   Page </title></head>"
            "<body><div>" + LONG_TEXT + "</div></body></html>"
        )
        page = extract_page(html, title_selector='h2')

        assert page.title == "Plain Page"
        assert page.content == LONG_TEXT

    def test_whitespace_collapsed(self):
        html = "<html><body><main>\n\n   " + LONG_TEXT.replace(' ', '\n\t ') + "   </main></body></html>"
        page = extract_page(html)
        assert page.content == LONG_TEXT


class TestInferType:
    """Test suite for URL based type inference."""

    def test_first_matching_pattern_wins(self):
        patterns = {'/blog/': 'post', '/blog/case-studies/': 'case-study'}
        assert infer_type('https://x.example/blog/case-studies/acme', patterns) == 'post'

    def test_default_type(self):
        assert infer_type('https://x.example/about', {'/blog/': 'post'}) == 'page'
        assert infer_type('https://x.example/about', None, 'landing') == 'landing'
