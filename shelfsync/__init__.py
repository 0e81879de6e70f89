"""Mirror point-of-sale inventory items onto a Shopify storefront."""

__version__ = "0.4.0"
