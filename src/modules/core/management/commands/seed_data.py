from __future__ import annotations

import random
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.core.management.base import BaseCommand

from modules.orders.dtos import DeliveryInfoDTO, OrderLineDTO, PlaceOrderDTO
from modules.orders.exceptions import InsufficientStock, RushOrderNotEligible
from modules.orders.factories import build_lifecycle_engine
from modules.payments.constants import PaymentMethodType
from modules.payments.models import PaymentMethod
from modules.products.models import MediaType, Product, ProductStatus

CATALOG = [
    ("BK-0001", "Dế Mèn Phiêu Lưu Ký", MediaType.BOOK, "85000", "0.350", True),
    ("BK-0002", "Số Đỏ", MediaType.BOOK, "72000", "0.300", True),
    ("BK-0003", "Clean Code", MediaType.BOOK, "420000", "0.800", True),
    ("BK-0004", "Atlas Việt Nam", MediaType.BOOK, "650000", "2.400", False),
    ("CD-0001", "Trịnh Công Sơn Tuyển Tập", MediaType.CD, "150000", "0.120", True),
    ("CD-0002", "Kind of Blue", MediaType.CD, "320000", "0.120", True),
    ("CD-0003", "Abbey Road", MediaType.CD, "350000", "0.120", True),
    ("DVD-0001", "Mùi Đu Đủ Xanh", MediaType.DVD, "180000", "0.150", True),
    ("DVD-0002", "Spirited Away", MediaType.DVD, "240000", "0.150", True),
    ("DVD-0003", "The Godfather Trilogy", MediaType.DVD, "890000", "0.450", False),
    ("LP-0001", "Khánh Ly: Hát Cho Quê Hương", MediaType.LP, "1200000", "0.300", False),
    ("LP-0002", "Rumours", MediaType.LP, "980000", "0.300", True),
]

ADDRESSES = [
    ("12 Hàng Bạc, Hoàn Kiếm", "Hà Nội"),
    ("45 Kim Mã, Ba Đình", "Hà Nội"),
    ("200 Nguyễn Trãi, Quận 1", "TP Hồ Chí Minh"),
    ("8 Trần Phú, Hải Châu", "Đà Nẵng"),
    ("17 Lê Lợi", "Huế"),
]


class Command(BaseCommand):
    help = "Seed database with realistic development data."

    def add_arguments(self, parser):
        parser.add_argument("--orders", type=int, default=20)

    def handle(self, *args, **options):
        random.seed(42)
        self.stdout.write("Seeding development data...")

        users_created = self._seed_users()
        products = self._seed_products()
        methods = self._seed_payment_methods()
        orders_created = self._seed_orders(products, options["orders"])

        self.stdout.write(
            self.style.SUCCESS(
                "Seed completed: "
                f"users={users_created}, "
                f"products={len(products)}, "
                f"payment_methods={methods}, "
                f"orders={orders_created}"
            )
        )

    def _seed_users(self) -> int:
        User = get_user_model()
        created = 0
        if not User.objects.filter(username="admin").exists():
            User.objects.create_superuser("admin", password="admin123")
            created += 1
        if not User.objects.filter(username="manager").exists():
            User.objects.create_user("manager", password="manager123", is_staff=True)
            created += 1
        if not User.objects.filter(username="user").exists():
            User.objects.create_user("user", password="user123")
            created += 1
        return created

    def _seed_products(self) -> list[Product]:
        self.stdout.write("Creating products...")
        products: list[Product] = []
        for sku, name, media_type, price, weight, rush in CATALOG:
            product, _ = Product.objects.get_or_create(
                sku=sku,
                defaults={
                    "name": name,
                    "media_type": media_type,
                    "price": Decimal(price),
                    "weight_kg": Decimal(weight),
                    "rush_eligible": rush,
                    "stock_quantity": random.randint(5, 60),
                    "status": ProductStatus.ACTIVE,
                },
            )
            products.append(product)
        self.stdout.write(self.style.SUCCESS("Creating products... Done!"))
        return products

    def _seed_payment_methods(self) -> int:
        user = get_user_model().objects.get(username="user")
        created = 0
        for method_type, label, is_default in [
            (PaymentMethodType.CREDIT_CARD, "Visa (VNPay)", True),
            (PaymentMethodType.DOMESTIC_DEBIT_CARD, "ATM nội địa", False),
        ]:
            _, was_created = PaymentMethod.objects.get_or_create(
                owner=user,
                method_type=method_type,
                defaults={"label": label, "is_default": is_default},
            )
            created += int(was_created)
        return created

    def _seed_orders(self, products: list[Product], count: int) -> int:
        self.stdout.write("Creating orders...")
        user = get_user_model().objects.get(username="user")
        engine = build_lifecycle_engine()
        orders_created = 0

        for i in range(count):
            address, province = random.choice(ADDRESSES)
            picked = random.sample(products, k=random.randint(1, 3))
            dto = PlaceOrderDTO(
                lines=[
                    OrderLineDTO(product_id=p.id, quantity=random.randint(1, 2))
                    for p in picked
                ],
                delivery=DeliveryInfoDTO(
                    recipient_name=f"Khách hàng {i + 1}",
                    phone=f"09{random.randint(10000000, 99999999)}",
                    email=f"customer{i + 1}@example.com",
                    address=address,
                    province_city=province,
                ),
                rush_order=random.random() < 0.2,
                user_id=user.id,
                notes=f"Seed order {i + 1}",
                idempotency_key=f"seed-{i + 1}",
            )
            try:
                engine.place_order(dto)
            except (InsufficientStock, RushOrderNotEligible) as exc:
                self.stdout.write(self.style.WARNING(f"Skipped seed order {i + 1}: {exc}"))
                continue
            orders_created += 1

        self.stdout.write(self.style.SUCCESS("Creating orders... Done!"))
        return orders_created
