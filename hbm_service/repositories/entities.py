"""
Per-entity repositories
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import and_, not_, or_, select
from sqlalchemy.orm import selectinload

from hbm_service.models import (
    Customer,
    User,
    Role,
    Order,
    OrderItem,
    OrderType,
    Product,
    ProductVariant,
    Inquiry,
    Media,
)
from hbm_service.repositories.base import SQLAlchemyRepository
from hbm_service.schemas.common import PaginatedResult, QueryOptions
from hbm_service.status.order_status import ORDER_STATUS_TIMESTAMP_FIELDS, OrderStatus


class CustomerRepository(SQLAlchemyRepository[Customer]):
    model = Customer

    async def find_by_email(self, email: str) -> Optional[Customer]:
        return await self.find_one_by(email=email.lower())


class UserRepository(SQLAlchemyRepository[User]):
    model = User

    async def find_by_email(self, email: str) -> Optional[User]:
        return await self.find_one_by(email=email.lower())

    async def find_ids_by_role(self, role_id) -> List[str]:
        result = await self.db.execute(select(User.id).where(User.role_id == role_id))
        return [str(row) for row in result.scalars().all()]


class RoleRepository(SQLAlchemyRepository[Role]):
    model = Role

    async def find_by_name(self, name: str) -> Optional[Role]:
        return await self.find_one_by(name=name)


# Stages checked before the quote, most terminal first
_STAGED_STATUSES = (
    OrderStatus.CANCELED,
    OrderStatus.DELIVERED,
    OrderStatus.SHIPPED,
    OrderStatus.COMPLETED,
    OrderStatus.PRODUCTION,
    OrderStatus.CONFIRMED,
)


def order_status_condition(status: OrderStatus, now: datetime):
    """
    SQL predicate matching orders whose derived status is status at now.

    Mirrors hbm_service.status.order_status.calculate_status so paging and
    totals are computed in the database.
    """
    status = OrderStatus(status)

    def column(s: OrderStatus):
        return getattr(Order, ORDER_STATUS_TIMESTAMP_FIELDS[s])

    if status in _STAGED_STATUSES:
        earlier = _STAGED_STATUSES[:_STAGED_STATUSES.index(status)]
        return and_(*[column(s).is_(None) for s in earlier], column(status).isnot(None))

    no_stage = [column(s).is_(None) for s in _STAGED_STATUSES]
    if status == OrderStatus.REQUESTED:
        return and_(*no_stage, Order.quoted_at.is_(None))

    quote_expired = or_(
        and_(Order.expired_at.isnot(None), Order.expired_at >= Order.quoted_at),
        and_(
            Order.quote_valid_until.isnot(None),
            Order.quote_valid_until >= Order.quoted_at,
            Order.quote_valid_until < now,
        ),
    )
    if status == OrderStatus.EXPIRED:
        return and_(*no_stage, Order.quoted_at.isnot(None), quote_expired)
    return and_(*no_stage, Order.quoted_at.isnot(None), not_(quote_expired))


class OrderRepository(SQLAlchemyRepository[Order]):
    model = Order

    async def create_with_items(self, data: Dict[str, Any], items: List[Dict[str, Any]]) -> Order:
        order = Order(**data)
        order.items = [OrderItem(**item) for item in items]
        self.db.add(order)
        await self.db.flush()
        return order

    async def find_with_items(self, order_id) -> Optional[Order]:
        result = await self.db.execute(
            select(Order).options(selectinload(Order.items)).where(Order.id == order_id)
        )
        return result.scalar_one_or_none()

    async def find_by_status(self, status: OrderStatus, now: datetime, options: Optional[QueryOptions] = None) -> PaginatedResult:
        return await self.find_all(options, extra_conditions=[order_status_condition(status, now)])


class OrderTypeRepository(SQLAlchemyRepository[OrderType]):
    model = OrderType

    async def find_by_name(self, name: str) -> Optional[OrderType]:
        return await self.find_one_by(name=name)


class ProductRepository(SQLAlchemyRepository[Product]):
    model = Product

    async def find_by_sku(self, sku: str) -> Optional[Product]:
        return await self.find_one_by(sku=sku)


class ProductVariantRepository(SQLAlchemyRepository[ProductVariant]):
    model = ProductVariant

    async def find_by_product(self, product_id) -> List[ProductVariant]:
        result = await self.db.execute(
            select(ProductVariant).where(ProductVariant.product_id == product_id).order_by(ProductVariant.name)
        )
        return list(result.scalars().all())

    async def find_by_identifier(self, variant_identifier: str) -> Optional[ProductVariant]:
        return await self.find_one_by(variant_identifier=variant_identifier)

    async def find_with_products(self, ids: List) -> List[ProductVariant]:
        if not ids:
            return []
        result = await self.db.execute(
            select(ProductVariant).options(selectinload(ProductVariant.product)).where(ProductVariant.id.in_(ids))
        )
        return list(result.scalars().all())


class InquiryRepository(SQLAlchemyRepository[Inquiry]):
    model = Inquiry


class MediaRepository(SQLAlchemyRepository[Media]):
    model = Media
