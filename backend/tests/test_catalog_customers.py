"""Catalog, supplier and customer directory services."""

from datetime import timedelta

import pytest

from conftest import item
from pharmapos.errors import ConflictError, NotFound, ValidationError
from pharmapos.services import catalog_service, customer_service, order_service, stock_service, supplier_service
from pharmapos.time_utils import utcnow


class TestCatalog:
    def test_create_product_defaults(self, db_session, app):
        p = catalog_service.create_product({"sku": "AMOX-500", "name": "Amoxicillin 500mg", "price_cents": 1299})

        assert p.id is not None
        assert p.stock_quantity == 0
        assert p.is_active is True
        assert p.reorder_level == app.config["LOW_STOCK_DEFAULT_REORDER_LEVEL"]

    def test_create_accepts_string_numbers_and_iso_dates(self, db_session):
        p = catalog_service.create_product({
            "sku": "ORS-01",
            "name": "Oral rehydration salts",
            "price_cents": "350",
            "stock_quantity": "40",
            "expiry_date": "2027-01-31",
        })
        assert p.price_cents == 350
        assert p.stock_quantity == 40
        assert p.expiry_date.isoformat() == "2027-01-31"

    def test_duplicate_sku_conflicts(self, db_session, make_product):
        make_product(sku="DUP-1")
        with pytest.raises(ConflictError):
            make_product(sku="DUP-1")

    @pytest.mark.parametrize("payload", [
        {"name": "No SKU", "price_cents": 100},
        {"sku": "X", "name": "Float price", "price_cents": 12.5},
        {"sku": "X", "name": "Negative", "price_cents": -1},
        {"sku": "X", "name": "Negative stock", "price_cents": 1, "stock_quantity": -3},
        {"sku": "X", "name": "Unknown", "price_cents": 1, "colour": "red"},
        {"sku": "X", "name": "  ", "price_cents": 1},
    ])
    def test_create_validation(self, db_session, payload):
        with pytest.raises(ValidationError):
            catalog_service.create_product(payload)

    def test_update_product(self, db_session, make_product):
        p = make_product(price_cents=100)
        updated = catalog_service.update_product(p.id, {"price_cents": 150, "name": "Renamed"})
        assert (updated.price_cents, updated.name) == (150, "Renamed")

    def test_update_cannot_touch_stock(self, db_session, make_product):
        p = make_product(stock=5)
        with pytest.raises(ValidationError):
            catalog_service.update_product(p.id, {"stock_quantity": 50})

    def test_update_sku_conflict(self, db_session, make_product):
        make_product(sku="A-1")
        b = make_product(sku="B-1")
        with pytest.raises(ConflictError):
            catalog_service.update_product(b.id, {"sku": "A-1"})

    def test_get_unknown_product(self, db_session):
        with pytest.raises(NotFound):
            catalog_service.get_product(42)

    def test_list_search_and_pagination(self, db_session, make_product):
        make_product(name="Cetirizine", sku="CET-10")
        make_product(name="Ibuprofen", sku="IBU-200")
        make_product(name="Ibuprofen gel", sku="IBU-GEL")

        assert catalog_service.list_products(search="ibu")["count"] == 2

        page = catalog_service.list_products(page=2, per_page=2)
        assert page["count"] == 1
        assert page["pagination"]["total"] == 3
        assert page["pagination"]["has_prev"] is True
        assert page["pagination"]["has_next"] is False

    def test_delete_never_stocked_product(self, db_session, make_product):
        p = make_product(stock=0)
        catalog_service.delete_product(p.id)
        assert catalog_service.count_products() == 0

    def test_delete_product_with_history_conflicts(self, db_session, make_product):
        stocked = make_product(stock=3)
        with pytest.raises(ConflictError):
            catalog_service.delete_product(stocked.id)

        sold = make_product(stock=0)
        stock_service.adjust_stock(product_id=sold.id, direction="in", quantity=2)
        order_service.place_order([item(sold, 1)])
        with pytest.raises(ConflictError):
            catalog_service.delete_product(sold.id)

    def test_expiring_products(self, db_session, make_product):
        today = utcnow().date()
        expired = make_product(expiry_date=(today - timedelta(days=1)).isoformat())
        soon = make_product(expiry_date=(today + timedelta(days=10)).isoformat())
        make_product(expiry_date=(today + timedelta(days=90)).isoformat())
        make_product()

        expiring = catalog_service.get_expiring_products(within_days=30)

        assert [p.id for p in expiring] == [expired.id, soon.id]


    def test_category_filter_and_listing(self, db_session, make_product):
        make_product(name="Ibuprofen", category="Pain Relief")
        make_product(name="Paracetamol", category="Pain Relief")
        make_product(name="Zinc", category="Vitamins")
        make_product(name="Gauze")

        listing = catalog_service.list_products(category="Pain Relief")

        assert [p["name"] for p in listing["items"]] == ["Ibuprofen", "Paracetamol"]
        assert catalog_service.list_categories() == ["Pain Relief", "Vitamins"]

    def test_blank_category_is_cleared(self, db_session, make_product):
        p = make_product(category="Allergy")
        assert catalog_service.update_product(p.id, {"category": "  "}).category is None


class TestSuppliers:
    def test_create_and_assign_to_product(self, db_session, make_product):
        s = supplier_service.create_supplier({"name": "MedSupply Co", "email": "orders@medsupply.test", "phone": ""})

        p = make_product(supplier_id=s.id)

        assert s.phone is None
        assert p.supplier.name == "MedSupply Co"
        assert p.to_dict()["supplier_name"] == "MedSupply Co"

    def test_unknown_supplier_on_product_is_not_found(self, db_session, make_product):
        with pytest.raises(NotFound):
            make_product(supplier_id=999)
        p = make_product()
        with pytest.raises(NotFound):
            catalog_service.update_product(p.id, {"supplier_id": 999})

    def test_clearing_supplier(self, db_session, make_product):
        s = supplier_service.create_supplier({"name": "PharmaDirect"})
        p = make_product(supplier_id=s.id)

        assert catalog_service.update_product(p.id, {"supplier_id": None}).supplier_id is None

    def test_listing_is_newest_first(self, db_session):
        first = supplier_service.create_supplier({"name": "Alpha Wholesale"})
        second = supplier_service.create_supplier({"name": "Beta Pharma"})

        assert [s.id for s in supplier_service.list_suppliers()] == [second.id, first.id]

    @pytest.mark.parametrize("payload", [
        {},
        {"name": ""},
        {"name": "X", "email": "not-an-email"},
        {"name": "X", "phone": "12"},
        {"name": "X", "rating": 5},
    ])
    def test_invalid_payloads(self, db_session, payload):
        with pytest.raises(ValidationError):
            supplier_service.create_supplier(payload)

    def test_update(self, db_session):
        s = supplier_service.create_supplier({"name": "Gamma"})
        updated = supplier_service.update_supplier(s.id, {"address": "12 Dock Road"})
        assert updated.address == "12 Dock Road"
        assert updated.version_id == 2

    def test_supplier_in_use_cannot_be_deleted(self, db_session, make_product):
        s = supplier_service.create_supplier({"name": "Delta"})
        p = make_product(supplier_id=s.id)

        with pytest.raises(ConflictError) as exc:
            supplier_service.delete_supplier(s.id)
        assert exc.value.details["product_count"] == 1

        catalog_service.update_product(p.id, {"supplier_id": None})
        supplier_id = s.id
        supplier_service.delete_supplier(supplier_id)
        with pytest.raises(NotFound):
            supplier_service.get_supplier(supplier_id)


class TestCustomers:
    def test_create_and_get(self, db_session):
        c = customer_service.create_customer({"name": "Kofi Mensah", "phone": "+233 20 123 4567"})
        assert customer_service.get_customer(c.id).name == "Kofi Mensah"
        assert c.total_visits == 0

    @pytest.mark.parametrize("payload", [
        {"name": "No phone"},
        {"name": "Short phone", "phone": "12"},
        {"name": "Bad email", "phone": "555-0199", "email": "nope"},
        {"name": "Extra", "phone": "555-0199", "total_spent_cents": 100},
    ])
    def test_create_validation(self, db_session, payload):
        with pytest.raises(ValidationError):
            customer_service.create_customer(payload)

    def test_update_customer(self, db_session, customer):
        updated = customer_service.update_customer(customer.id, {"address": "12 Harbour Rd"})
        assert updated.address == "12 Harbour Rd"
        assert updated.phone == "555-0101"

    def test_search(self, db_session, customer):
        customer_service.create_customer({"name": "Grace Otieno", "phone": "555-0202"})

        assert [c.name for c in customer_service.search_customers("amina")] == ["Amina Yusuf"]
        assert len(customer_service.search_customers("555-0")) == 2
        assert customer_service.search_customers("   ") == []

    def test_delete_customer_without_orders(self, db_session, customer):
        customer_id = customer.id
        customer_service.delete_customer(customer_id)
        with pytest.raises(NotFound):
            customer_service.get_customer(customer_id)

    def test_delete_customer_with_orders_conflicts(self, db_session, make_product, customer):
        p = make_product(stock=5)
        order_service.place_order([item(p, 1)], customer_id=customer.id)
        with pytest.raises(ConflictError):
            customer_service.delete_customer(customer.id)
