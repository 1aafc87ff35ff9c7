class DomainError(Exception):
    """Base class for failures surfaced synchronously to callers."""


class NotFoundError(DomainError):
    pass


class UserNotFoundError(NotFoundError):
    def __init__(self, user_id: str):
        super().__init__(f"User {user_id} not found")
        self.user_id = user_id


class OrderNotFoundError(NotFoundError):
    def __init__(self, order_id: str):
        super().__init__(f"Order {order_id} not found")
        self.order_id = order_id


class BusinessError(DomainError):
    pass


class OrderAlreadyDeletedError(BusinessError):
    def __init__(self, order_id: str):
        super().__init__(f"Order {order_id} is already deleted")
        self.order_id = order_id


class ProducerNotStartedError(RuntimeError):
    pass
