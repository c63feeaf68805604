PLAN_INSTALLMENTS = {
    "monthly": 1,
    "quarterly": 3,
    "semiannual": 6,
    "annual": 12,
}

FEE_STATUS_PENDING = "pending"
FEE_STATUS_PAID = "paid"
FEE_STATUS_OVERDUE = "overdue"
FEE_STATUSES = (FEE_STATUS_PENDING, FEE_STATUS_PAID, FEE_STATUS_OVERDUE)

PAYMENT_METHODS = ("pix", "credit_card", "boleto", "cash")

# Installment descriptions always use Brazilian Portuguese month names,
# whatever the UI language is.
MONTH_NAMES = (
    "janeiro",
    "fevereiro",
    "março",
    "abril",
    "maio",
    "junho",
    "julho",
    "agosto",
    "setembro",
    "outubro",
    "novembro",
    "dezembro",
)

TENANT_HEADER = "X-Tenant-ID"
