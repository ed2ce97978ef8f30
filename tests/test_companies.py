"""Tests for tenant profile, slug assignment and logo upload."""

from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest

from frontgate.domain.companies import (
    Company,
    ensure_slug,
    get_company_by_slug,
    logo_key,
    public_links,
    slugify,
    update_logo,
)
from frontgate.domain.errors import InvalidInputError, NotFoundError


@pytest.fixture
def cur():
    return MagicMock()


class TestSlug:
    @pytest.mark.parametrize(
        "name, slug",
        [("Acme Corp.", "acme-corp"), ("  Tata & Sons  ", "tata-sons"), ("!!!", "company")],
    )
    def test_slugify(self, name, slug):
        assert slugify(name) == slug

    def test_existing_slug_kept(self, cur):
        cur.fetchone.return_value = ("Acme", "acme")
        assert ensure_slug(cur, 7) == "acme"
        assert cur.execute.call_count == 1
        assert "FOR UPDATE" in cur.execute.call_args[0][0]

    def test_assigns_with_suffix_on_collision(self, cur):
        cur.fetchone.side_effect = [("Acme", None), (1,), (1,), None]

        assert ensure_slug(cur, 7) == "acme-2"

        assert cur.execute.call_args[0][1] == ("acme-2", 7)

    def test_lookup_normalizes(self, cur):
        cur.fetchone.return_value = None
        with pytest.raises(NotFoundError):
            get_company_by_slug(cur, " Acme ")
        assert cur.execute.call_args[0][1] == ("acme",)


class TestLinksAndLogo:
    def test_public_links(self, monkeypatch):
        from frontgate.infra.settings import get_settings

        monkeypatch.setenv("PUBLIC_APP_URL", "https://app.frontgate.test/")
        get_settings.cache_clear()

        assert public_links("acme") == {
            "visitor_registration_url": "https://app.frontgate.test/visitor/acme",
            "booking_url": "https://app.frontgate.test/book/acme",
        }

    def test_logo_key(self):
        assert logo_key("acme", "Logo.PNG") == "companies/acme/logo.png"
        assert logo_key("acme", None) == "companies/acme/logo.png"

    def test_update_logo(self, cur):
        storage = MagicMock()
        storage.upload.return_value = "https://cdn.test/companies/acme/logo.jpg"
        cur.fetchone.return_value = ("Acme", "acme")

        url = update_logo(cur, storage, 7, data=b"img", filename="logo.jpg", mime_type="image/jpeg")

        assert url == "https://cdn.test/companies/acme/logo.jpg"
        storage.upload.assert_called_once_with(b"img", "image/jpeg", "companies/acme/logo.jpg")
        assert cur.execute.call_args[0][1] == (url, 7)

    def test_logo_must_be_image(self, cur):
        with pytest.raises(InvalidInputError):
            update_logo(cur, MagicMock(), 7, data=b"%PDF", filename="x.pdf", mime_type="application/pdf")


class TestLocalNow:
    def test_tenant_zone(self):
        company = Company(7, "Acme", "acme", None, "trial", "trial", "Asia/Kolkata")
        local = company.local_now(datetime(2024, 1, 9, 20, 0, tzinfo=timezone.utc))
        assert (local.day, local.hour, local.minute) == (10, 1, 30)

    def test_unknown_zone_falls_back(self):
        company = Company(7, "Acme", "acme", None, "trial", "trial", "Mars/Olympus")
        local = company.local_now(datetime(2024, 1, 9, 20, 0, tzinfo=timezone.utc))
        assert local.utcoffset().total_seconds() == 5.5 * 3600
