from grocer.models import Product
from grocer.services.order_service import create_order


def test_fingerprint_command(app):
    result = app.test_cli_runner().invoke(args=["catalog", "fingerprint", "507f1f77bcf86cd799439011"])
    assert result.exit_code == 0
    assert "canonical" in result.output
    assert "586034808" in result.output
    assert "3708932488" in result.output


def test_create_product_command(app, db_session):
    result = app.test_cli_runner().invoke(args=["catalog", "create-product", "--name", "Corned Beef", "--price", "42.5"])
    assert result.exit_code == 0
    assert "PASS Created product: Corned Beef" in result.output
    db_session.expire_all()
    assert db_session.query(Product).filter_by(name="Corned Beef").count() == 1


def test_backfill_command_dry_run(app, db_session, make_product):
    product = make_product(name="Legacy")
    product.fingerprint = None
    db_session.commit()

    result = app.test_cli_runner().invoke(args=["catalog", "backfill-fingerprints", "--dry-run"])
    assert result.exit_code == 0
    assert "Would assign" in result.output
    assert "1 assigned, 0 mismatched (dry run)" in result.output


def test_orders_show_command(app, db_session, make_product):
    product = make_product(name="Bear Brand 320g", price="88.00")
    order = create_order({
        "name": "Ana Reyes",
        "totalPrice": 176,
        "device_id": "device-a",
        "items": [{"product_id": product.id, "quantity": 2}],
    }).order

    result = app.test_cli_runner().invoke(args=["orders", "show", order.order_code])
    assert result.exit_code == 0
    assert "Ana Reyes" in result.output
    assert "Bear Brand 320g" in result.output

    missing = app.test_cli_runner().invoke(args=["orders", "show", "ORD000000"])
    assert "FAIL Order ORD000000 not found" in missing.output
