from .catalog import Category, Size, Color, Product, ProductSizePrice, product_sizes, product_colors
from .invoices import Invoice, InvoiceItem, SalesRecord
from .settings import StoreSettings
from .documents import DocumentSequence

__all__ = [
    'Category', 'Size', 'Color', 'Product', 'ProductSizePrice',
    'product_sizes', 'product_colors',
    'Invoice', 'InvoiceItem', 'SalesRecord',
    'StoreSettings',
    'DocumentSequence',
]
