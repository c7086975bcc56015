"""
Product catalog configuration.

Maps checkout selections (product id, tier id, or a loose product-type hint)
onto Creem product ids. Product ids can be overridden per environment via the
CREEM_*_ID settings.
"""

from dataclasses import dataclass

from namegen.config import Settings, settings
from namegen.models.api import ProductType


@dataclass(frozen=True)
class ProductTier:
    """One purchasable tier."""

    id: str
    name: str
    product_id: str
    product_type: ProductType
    price_monthly: str
    description: str
    credit_amount: int | None = None
    featured: bool = False

    def __post_init__(self) -> None:
        """Validate tier configuration."""
        if not self.product_id:
            raise ValueError(f"Product ID required for tier {self.id}")
        if self.product_type == ProductType.CREDITS and not self.credit_amount:
            raise ValueError(f"Credits tier {self.id} needs a positive credit amount")


@dataclass(frozen=True)
class ResolvedProduct:
    """What the payment provider is asked to sell."""

    product_id: str
    product_type: ProductType
    credits_amount: int | None = None


class ProductCatalog:
    """Subscription tiers and credit packs offered at checkout."""

    def __init__(
        self,
        subscription_tiers: tuple[ProductTier, ...],
        credits_tiers: tuple[ProductTier, ...],
    ) -> None:
        if not subscription_tiers or not credits_tiers:
            raise ValueError("Catalog needs at least one subscription and one credits tier")
        self.subscription_tiers = subscription_tiers
        self.credits_tiers = credits_tiers

    def get_tier(self, tier_id: str) -> ProductTier | None:
        """Look a tier up by its id (e.g. "tier-hobby")."""
        for tier in (*self.subscription_tiers, *self.credits_tiers):
            if tier.id == tier_id:
                return tier
        return None

    def default_credits_tier(self) -> ProductTier:
        """Featured credits tier, otherwise the first one."""
        for tier in self.credits_tiers:
            if tier.featured:
                return tier
        return self.credits_tiers[0]

    def resolve_product_id(self, product_id: str | None) -> ResolvedProduct | None:
        """Known product ids map to their tier; unknown ones are sold as credits."""
        if not product_id:
            return None
        for tier in (*self.subscription_tiers, *self.credits_tiers):
            if tier.product_id == product_id:
                return _from_tier(tier)
        return ResolvedProduct(product_id=product_id, product_type=ProductType.CREDITS)

    def resolve_tier_id(self, tier_id: str | None) -> ResolvedProduct | None:
        if not tier_id:
            return None
        tier = self.get_tier(tier_id)
        return _from_tier(tier) if tier else None

    def resolve_hint(self, product_type: str | None) -> ResolvedProduct:
        """Fallback when neither id matched: "subscription" or any credits pack."""
        if (product_type or "").lower() == ProductType.SUBSCRIPTION.value:
            return _from_tier(self.subscription_tiers[0])
        return _from_tier(self.default_credits_tier())

    def resolve(
        self,
        product_id: str | None = None,
        tier_id: str | None = None,
        product_type: str | None = None,
        credits_amount: int | None = None,
    ) -> ResolvedProduct:
        """
        Resolve a checkout request.

        Order: product id, then tier id, then the product-type hint. An
        explicit ``credits_amount`` wins over the tier's amount, and any
        product type mentioning "credit" is sold as credits.
        """
        resolved = (
            self.resolve_product_id(product_id)
            or self.resolve_tier_id(tier_id)
            or self.resolve_hint(product_type)
        )

        amount = credits_amount if credits_amount is not None else resolved.credits_amount
        resolved_type = resolved.product_type
        if product_type and "credit" in product_type.lower():
            resolved_type = ProductType.CREDITS

        return ResolvedProduct(
            product_id=resolved.product_id,
            product_type=resolved_type,
            credits_amount=amount,
        )


def _from_tier(tier: ProductTier) -> ResolvedProduct:
    return ResolvedProduct(
        product_id=tier.product_id,
        product_type=tier.product_type,
        credits_amount=tier.credit_amount,
    )


def build_catalog(config: Settings | None = None) -> ProductCatalog:
    """Build the catalog, applying product id overrides from settings."""
    config = config or settings

    subscription_tiers = (
        ProductTier(
            id="tier-hobby",
            name="Starter",
            product_id=config.creem_starter_product_id or "prod_starter_monthly",
            product_type=ProductType.SUBSCRIPTION,
            price_monthly="$11",
            description="Perfect for individuals wanting to explore Chinese names.",
        ),
        ProductTier(
            id="tier-pro",
            name="Business",
            product_id=config.creem_business_product_id or "prod_business_monthly",
            product_type=ProductType.SUBSCRIPTION,
            price_monthly="$29",
            description="Ideal for enthusiasts and professionals seeking quality Chinese names.",
            featured=True,
        ),
        ProductTier(
            id="tier-enterprise",
            name="Enterprise",
            product_id=config.creem_enterprise_product_id or "prod_enterprise_monthly",
            product_type=ProductType.SUBSCRIPTION,
            price_monthly="$99",
            description="For organizations and cultural institutions with advanced naming needs.",
        ),
    )

    credits_tiers = (
        ProductTier(
            id="tier-3-credits",
            name="Basic Package",
            product_id=config.creem_basic_credits_id or "prod_basic_credits",
            product_type=ProductType.CREDITS,
            price_monthly="$9",
            description="3 credits for testing and small-scale projects.",
            credit_amount=3,
        ),
        ProductTier(
            id="tier-6-credits",
            name="Standard Package",
            product_id=config.creem_standard_credits_id or "prod_standard_credits",
            product_type=ProductType.CREDITS,
            price_monthly="$13",
            description="6 credits for regular name generation needs.",
            credit_amount=6,
            featured=True,
        ),
        ProductTier(
            id="tier-9-credits",
            name="Premium Package",
            product_id=config.creem_premium_credits_id or "prod_premium_credits",
            product_type=ProductType.CREDITS,
            price_monthly="$29",
            description="9 credits for extensive name generation and exploration.",
            credit_amount=9,
        ),
    )

    return ProductCatalog(subscription_tiers, credits_tiers)
