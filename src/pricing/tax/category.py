"""Tax category aggregate: the tax class a product line is charged under."""

from protean.fields import Boolean, Integer, String, Text

from pricing.domain import pricing
from pricing.tax.events import DefaultTaxCategoryChanged, TaxCategoryCreated


@pricing.aggregate
class TaxCategory:
    code = String(required=True, max_length=50)
    name = String(required=True, max_length=200)
    description = Text()
    is_tax_exempt = Boolean(default=False)
    is_default = Boolean(default=False)
    is_active = Boolean(default=True)
    sort_order = Integer(default=0)

    @classmethod
    def create(cls, code, name, description=None, is_tax_exempt=False, sort_order=0):
        category = cls(
            code=code.strip().upper(),
            name=name,
            description=description,
            is_tax_exempt=is_tax_exempt,
            sort_order=sort_order,
        )
        category.raise_(
            TaxCategoryCreated(
                category_id=str(category.id),
                code=category.code,
                is_tax_exempt=category.is_tax_exempt,
            )
        )
        return category

    def mark_default(self, is_default=True):
        if bool(self.is_default) == is_default:
            return
        self.is_default = is_default
        self.raise_(DefaultTaxCategoryChanged(category_id=str(self.id), is_default=is_default))
