"""
枚举类型定义模块

定义应用中使用的所有枚举类型。
所有枚举都继承自 str 和 Enum，这样既可以用作字符串，又具有枚举的特性。
"""
from enum import Enum  # 枚举类型，用于定义固定的选项集合


class OrderStatus(str, Enum):
    """
    订单状态枚举

    状态流转：
        pending → processing → shipped → delivered（终态）
        pending → cancelled（终态）
        processing → cancelled（终态，如拒付/支付被拒）
        processing → refunded（终态）
    """
    pending = "pending"
    processing = "processing"
    shipped = "shipped"
    delivered = "delivered"
    cancelled = "cancelled"
    refunded = "refunded"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset(
    {OrderStatus.delivered, OrderStatus.cancelled, OrderStatus.refunded}
)


class PaymentProvider(str, Enum):
    """
    支付/结账渠道枚举

    - card: 银行卡支付（Stripe）
    - hosted_cart_a: 托管购物车 A（Foxy）
    - hosted_cart_b: 托管购物车 B（Ecwid）
    """
    card = "card"
    hosted_cart_a = "hosted_cart_a"
    hosted_cart_b = "hosted_cart_b"


class CouponType(str, Enum):
    """
    优惠券类型枚举

    - percentage: 按百分比折扣（value 为百分比，0 < value <= 100）
    - fixed_amount: 固定金额减免（value 为最小货币单位）
    - free_shipping: 免运费（value 恒为 0）
    - bundle_deal: 组合优惠（value 为最少商品件数，>= 2）
    """
    percentage = "percentage"
    fixed_amount = "fixed_amount"
    free_shipping = "free_shipping"
    bundle_deal = "bundle_deal"


class CouponRejectionReason(str, Enum):
    """优惠券被拒绝的原因"""
    not_found = "not_found"
    inactive = "inactive"
    not_yet_valid = "not_yet_valid"
    expired = "expired"
    usage_limit_reached = "usage_limit_reached"
    minimum_not_met = "minimum_not_met"
    bundle_not_eligible = "bundle_not_eligible"


class NotificationKind(str, Enum):
    """订单状态通知类型（邮件）"""
    shipped = "shipped"
    delivered = "delivered"
    cancelled = "cancelled"
