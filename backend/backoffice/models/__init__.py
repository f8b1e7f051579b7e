from .inventory import Product, InventoryLog
from .partners import Customer, Vendor, CustomerBalanceLog
from .sales import Sale, SaleItem, Delivery, DeliveryItem, SaleCorrection, PrizePool, Prize
from .purchases import Purchase, PurchaseItem
from .accounts import Account, AccountTransaction
from .receivables import PartnerAccount, Settlement, SettlementAllocation
from .points import PointProgram, PointRedemptionTier, CustomerPoints, PointLog
from .documents import DocumentSequence

__all__ = [
    'Product', 'InventoryLog',
    'Customer', 'Vendor', 'CustomerBalanceLog',
    'Sale', 'SaleItem', 'Delivery', 'DeliveryItem', 'SaleCorrection', 'PrizePool', 'Prize',
    'Purchase', 'PurchaseItem',
    'Account', 'AccountTransaction',
    'PartnerAccount', 'Settlement', 'SettlementAllocation',
    'PointProgram', 'PointRedemptionTier', 'CustomerPoints', 'PointLog',
    'DocumentSequence',
]
