"""
Pytest fixtures for the inventory backend tests.

Provides test database setup, two-tenant catalog fixtures, and test client.
"""

import pytest
from invsaas import create_app
from invsaas.extensions import db
from invsaas.models import Tenant, Product, Variant, Supplier
from invsaas.notifier import RecordingNotifier


TENANT_A = "tenant-acme"
TENANT_B = "tenant-beta"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'NOTIFIER': 'memory',
        'STOCK_RETRY_BACKOFF': 0,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def notifier():
    """In-memory notifier capturing published change events."""
    return RecordingNotifier()


@pytest.fixture(scope='function')
def app_notifier(app):
    """The notifier the routes publish to, cleared for each test."""
    recorder = app.extensions["invsaas.notifier"]
    recorder.clear()
    return recorder


@pytest.fixture(scope='function')
def tenant_a(db_session):
    """Create Tenant A (first tenant)."""
    tenant = Tenant(id=TENANT_A, name="Acme Apparel", is_active=True)
    db_session.add(tenant)
    db_session.commit()
    return tenant


@pytest.fixture(scope='function')
def tenant_b(db_session):
    """Create Tenant B (second tenant)."""
    tenant = Tenant(id=TENANT_B, name="Beta Outfitters", is_active=True)
    db_session.add(tenant)
    db_session.commit()
    return tenant


def make_product(session, tenant_id, name, variants, category="Apparel"):
    """Create a product with (sku, stock, price_cents) variants and commit."""
    product = Product(
        tenant_id=tenant_id,
        name=name,
        category=category,
        base_price_cents=variants[0][2] if variants else 0,
        total_stock=sum(stock for _, stock, _ in variants),
    )
    for sku, stock, price_cents in variants:
        product.variants.append(Variant(
            tenant_id=tenant_id,
            sku=sku,
            attributes={"sku": sku},
            price_cents=price_cents,
            stock=stock,
        ))
    session.add(product)
    session.commit()
    return product


@pytest.fixture(scope='function')
def product_a(db_session, tenant_a):
    """T-shirt in Tenant A: variant TS-RED-M with stock 10, TS-BLUE-L with stock 3."""
    return make_product(db_session, tenant_a.id, "T-shirt", [
        ("TS-RED-M", 10, 1999),
        ("TS-BLUE-L", 3, 2199),
    ])


@pytest.fixture(scope='function')
def product_b(db_session, tenant_b):
    """Hoodie in Tenant B."""
    return make_product(db_session, tenant_b.id, "Hoodie", [
        ("HD-GRY-M", 7, 4999),
    ])


@pytest.fixture(scope='function')
def supplier_a(db_session, tenant_a):
    supplier = Supplier(tenant_id=tenant_a.id, name="Cotton Mills Ltd", email="orders@cotton.test")
    db_session.add(supplier)
    db_session.commit()
    return supplier


@pytest.fixture(scope='function')
def supplier_b(db_session, tenant_b):
    supplier = Supplier(tenant_id=tenant_b.id, name="Fleece Works")
    db_session.add(supplier)
    db_session.commit()
    return supplier


def variant_by_sku(product, sku):
    variant = product.find_variant_by_sku(sku)
    assert variant is not None, f"fixture variant {sku} missing"
    return variant


def tenant_headers(tenant_id: str, user_id: str = "user-1") -> dict:
    """Helper to create upstream tenant context headers."""
    return {'X-Tenant-ID': tenant_id, 'X-User-ID': user_id}
