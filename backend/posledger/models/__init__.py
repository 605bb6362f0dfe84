from .tenancy import Organization, Branch
from .sequences import ReferenceSequence
from .customers import Customer, LoyaltyProgram, LoyaltyAccount, LoyaltyTransaction
from .sales import Sale, SaleReturn
from .purchasing import Supplier, GoodsReceipt, Expense
from .credits import CustomerCredit, SupplierCredit
from .gift_cards import GiftCard, GiftCardTransaction
from .fiscal import FiscalPrinterConfig, FiscalJob, BridgeToken, IdempotencyKey

__all__ = [
    'Organization', 'Branch',
    'ReferenceSequence',
    'Customer', 'LoyaltyProgram', 'LoyaltyAccount', 'LoyaltyTransaction',
    'Sale', 'SaleReturn',
    'Supplier', 'GoodsReceipt', 'Expense',
    'CustomerCredit', 'SupplierCredit',
    'GiftCard', 'GiftCardTransaction',
    'FiscalPrinterConfig', 'FiscalJob', 'BridgeToken', 'IdempotencyKey',
]
