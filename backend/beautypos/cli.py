# Overview: Flask CLI command groups for bootstrap and catalog inspection.

# backend/beautypos/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to beautypos.wsgi (PowerShell: $env:FLASK_APP="beautypos.wsgi").
# - Use: python -m flask <group> <command> [options]
#
# System:
# - python -m flask system init
#   Create all tables (idempotent).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Catalog:
# - python -m flask catalog seed
#   Insert demo categories, products and discounts (skips existing SKUs).
# - python -m flask catalog low-stock
#   List active products at or below their minimum stock level.

from datetime import timedelta

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Category, Discount, Product
from .services import catalog_service
from .time_utils import business_date


DEMO_CATEGORIES = ["Skincare", "Makeup", "Haircare", "Fragrance"]

# (sku, name, category, price_cents, cost_cents, stock, min_stock)
DEMO_PRODUCTS = [
    ("SKN-001", "Hydrating Face Serum", "Skincare", 2899, 1200, 40, 5),
    ("SKN-002", "Daily SPF 50 Moisturizer", "Skincare", 2450, 950, 30, 5),
    ("MKP-001", "Matte Liquid Lipstick", "Makeup", 1599, 500, 60, 10),
    ("MKP-002", "Volumizing Mascara", "Makeup", 1899, 650, 25, 5),
    ("HAR-001", "Argan Oil Shampoo", "Haircare", 1350, 480, 35, 8),
    ("FRG-001", "Rose Eau de Parfum 50ml", "Fragrance", 6500, 2800, 8, 3),
]


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@with_appcontext
def init_system():
    """Create all tables."""
    db.create_all()
    click.echo("PASS Database tables created")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Confirm destructive reset')
@with_appcontext
def reset_db(yes):
    """DEV/TEST only: drop and recreate all tables."""
    if not yes:
        click.echo("FAIL Refusing to reset without --yes")
        raise SystemExit(1)
    db.drop_all()
    db.create_all()
    click.echo("PASS Database reset")


@click.group('catalog')
def catalog_group():
    """Catalog seeding and inspection commands."""


@catalog_group.command('seed')
@with_appcontext
def seed_catalog():
    """Insert demo categories, products and discounts."""
    categories = {}
    for name in DEMO_CATEGORIES:
        category = db.session.query(Category).filter_by(name=name).first()
        if not category:
            category = Category(name=name)
            db.session.add(category)
            db.session.flush()
        categories[name] = category

    created = 0
    for sku, name, category_name, price, cost, stock, min_stock in DEMO_PRODUCTS:
        if db.session.query(Product).filter_by(sku=sku).first():
            click.echo(f"WARN  Product '{sku}' already exists, skipping...")
            continue
        catalog_service.create_product({
            "sku": sku,
            "name": name,
            "category_id": categories[category_name].id,
            "price_cents": price,
            "cost_cents": cost,
            "stock_quantity": stock,
            "min_stock_level": min_stock,
        })
        created += 1

    today = business_date()
    if not db.session.query(Discount).filter_by(name="Welcome 10%").first():
        db.session.add(Discount(
            name="Welcome 10%",
            description="10% off orders of 100.00 or more",
            type="percentage",
            value=1000,
            minimum_amount_cents=10000,
            maximum_discount_cents=50000,
            valid_from=today,
            valid_until=today + timedelta(days=365),
        ))
    if not db.session.query(Discount).filter_by(name="5 Off").first():
        db.session.add(Discount(
            name="5 Off",
            type="fixed_amount",
            value=500,
            valid_from=today,
            valid_until=today + timedelta(days=30),
            usage_limit=100,
        ))

    db.session.commit()
    click.echo(f"PASS Seeded {created} product(s)")


@catalog_group.command('low-stock')
@with_appcontext
def low_stock():
    """List active products at or below their minimum stock level."""
    products = catalog_service.get_low_stock_products()
    if not products:
        click.echo("PASS No low-stock products")
        return
    for p in products:
        click.echo(f"{p.sku:<10} {p.name:<32} stock={p.stock_quantity} min={p.min_stock_level}")


def register_commands(app):
    app.cli.add_command(system_group)
    app.cli.add_command(catalog_group)
