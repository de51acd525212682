from dataclasses import dataclass

from marketplace.models import Order, Product, Role, User


@dataclass(frozen=True)
class Principal:
    """Authenticated caller: user id plus one closed role tag."""

    user_id: int
    role: Role

    @classmethod
    def from_user(cls, user: User) -> "Principal":
        return cls(user_id=user.id, role=Role(user.role))

    @property
    def is_admin(self) -> bool:
        return self.role is Role.ADMIN

    @property
    def is_creator(self) -> bool:
        return self.role is Role.CREATOR

    def has_role(self, *roles: Role) -> bool:
        return self.role in roles

    def owns_order(self, order: Order) -> bool:
        return order.user_id is not None and order.user_id == self.user_id

    def can_manage_order(self, order: Order) -> bool:
        # guest orders have no owner, only admins can act on them
        return self.is_admin or self.owns_order(order)

    def can_manage_product(self, product: Product) -> bool:
        if self.is_admin:
            return True
        return self.is_creator and product.creator_id == self.user_id
