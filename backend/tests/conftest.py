"""Shared fixtures for the PINT-AE readiness test suite."""

import copy

import pytest

from pintae.engine.datasets import build_data_context


# ═══════════════════════════════════════════════════
# Sample datasets (dicts shaped like parsed uploads)
# ═══════════════════════════════════════════════════

def _buyer(buyer_id: str, name: str, trn: str) -> dict:
    return {
        "buyer_id": buyer_id,
        "buyer_name": name,
        "buyer_trn": trn,
        "buyer_address": "Sheikh Zayed Road",
        "buyer_city": "Dubai",
        "buyer_country": "AE",
        "buyer_subdivision": "AE-DU",
        "buyer_electronic_address": f"{buyer_id.lower()}@peppol.ae",
    }


def _header(n: int, buyer_id: str, excl: str, vat: str, incl: str) -> dict:
    return {
        "invoice_id": f"INV00{n}",
        "invoice_number": f"UAE-2025-000{n}",
        "issue_date": f"2025-01-1{4 + n}",
        "invoice_type": "380",
        "seller_trn": "100000000000001",
        "seller_name": "Dariba Tax Technologies LLC",
        "seller_address": "Al Sila Tower ADGM",
        "seller_city": "Abu Dhabi",
        "seller_country": "AE",
        "seller_subdivision": "AE-AZ",
        "seller_electronic_address": "dariba@peppol.ae",
        "seller_legal_reg_id": "TL-123456",
        "seller_legal_reg_id_type": "TL",
        "buyer_id": buyer_id,
        "currency": "AED",
        "transaction_type_code": "01000000",
        "payment_due_date": f"2025-02-1{3 + n}",
        "payment_means_code": "30",
        "fx_rate": "1.000000",
        "total_excl_vat": excl,
        "vat_total": vat,
        "total_incl_vat": incl,
        "amount_due": incl,
        "tax_category_code": "S",
        "tax_category_rate": "5.00",
    }


def _line(n: int, quantity: str, price: str, total: str, vat: str) -> dict:
    return {
        "line_id": f"L00{n}",
        "invoice_id": f"INV00{n}",
        "line_number": "1",
        "item_name": f"Consulting services {n}",
        "quantity": quantity,
        "unit_of_measure": "EA",
        "unit_price": price,
        "line_discount": "0.00",
        "line_total_excl_vat": total,
        "vat_rate": "5.00",
        "vat_amount": vat,
        "tax_category_code": "S",
    }


@pytest.fixture
def sample_positive():
    """Three clean AED invoices, one line each, every buyer known."""
    return {
        "buyers": [
            _buyer("B001", "Acme Corporation LLC", "100000000000003"),
            _buyer("B002", "Global Traders FZ-LLC", "200000000000003"),
            _buyer("B003", "Tech Solutions DMCC", "300000000000003"),
        ],
        "headers": [
            _header(1, "B001", "1000.00", "50.00", "1050.00"),
            _header(2, "B002", "2000.00", "100.00", "2100.00"),
            _header(3, "B003", "500.00", "25.00", "525.00"),
        ],
        "lines": [
            _line(1, "10", "100.00", "1000.00", "50.00"),
            _line(2, "1", "2000.00", "2000.00", "100.00"),
            _line(3, "5", "100.00", "500.00", "25.00"),
        ],
    }


@pytest.fixture
def sample_negative(sample_positive):
    """The clean sample with one seeded defect per record.

      - B002 buyer TRN is not 15 digits
      - B003 has no electronic address
      - INV002 has an unknown subdivision and no due date
      - INV003 VAT total is 20.00 (lines say 25.00)
      - L002 VAT is 140.00 on a 2000.00 base at 5%
    """
    data = copy.deepcopy(sample_positive)
    data["buyers"][1]["buyer_trn"] = "INVALIDTRN"
    data["buyers"][2]["buyer_electronic_address"] = ""
    data["headers"][1]["seller_subdivision"] = "AE-XX"
    data["headers"][1]["payment_due_date"] = ""
    data["headers"][2]["vat_total"] = "20.00"
    data["lines"][1]["vat_amount"] = "140.00"
    return data


@pytest.fixture
def positive_context(sample_positive):
    return build_data_context(**sample_positive)


@pytest.fixture
def negative_context(sample_negative):
    return build_data_context(**sample_negative)


@pytest.fixture
def make_context():
    """Build a DataContext from keyword lists of records."""
    def _make(buyers=None, headers=None, lines=None):
        return build_data_context(buyers or [], headers or [], lines or [])
    return _make
