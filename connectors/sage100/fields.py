"""Sage 100 BOI object and field names.

ProvideX string fields carry a ``$`` suffix; numeric fields do not.
"""

# =============================================================================
# Objects
# =============================================================================

SESSION = "SY_Session"
CUSTOMER_SVC = "AR_Customer_svc"
SHIP_TO_SVC = "SO_ShipToAddress_svc"
ITEM_SVC = "CI_Item_svc"
SALES_ORDER_BUS = "SO_SalesOrder_bus"
SALES_ORDER_UI = "SO_SalesOrder_ui"


# =============================================================================
# Shared keys
# =============================================================================

AR_DIVISION_NO = "ARDivisionNo$"
CUSTOMER_NO = "CustomerNo$"


# =============================================================================
# AR_Customer_svc
# =============================================================================

CUSTOMER_NAME = "CustomerName$"
CUSTOMER_STATUS = "CustomerStatus$"
ADDRESS_LINE1 = "AddressLine1$"
ADDRESS_LINE2 = "AddressLine2$"
CITY = "City$"
STATE = "State$"
ZIP_CODE = "ZipCode$"
COUNTRY_CODE = "CountryCode$"
TELEPHONE_NO = "TelephoneNo$"
PRICE_LEVEL = "PriceLevel$"
TAX_SCHEDULE = "TaxSchedule$"
TERMS_CODE = "TermsCode$"
# Primary ship-to is stored as ShipToCode$ on most versions
PRIMARY_SHIP_TO_CODE = "ShipToCode$"
DEFAULT_SHIP_TO_CODE = "DefaultShipToCode$"


# =============================================================================
# SO_ShipToAddress_svc
# =============================================================================

SHIP_TO_CODE = "ShipToCode$"
SHIP_TO_NAME = "ShipToName$"
SHIP_TO_ADDRESS1 = "ShipToAddress1$"
SHIP_TO_ADDRESS2 = "ShipToAddress2$"
SHIP_TO_CITY = "ShipToCity$"
SHIP_TO_STATE = "ShipToState$"
SHIP_TO_ZIP_CODE = "ShipToZipCode$"
SHIP_TO_COUNTRY_CODE = "ShipToCountryCode$"
WAREHOUSE_CODE = "WarehouseCode$"
SHIP_VIA = "ShipVia$"


# =============================================================================
# CI_Item_svc
# =============================================================================

ITEM_CODE = "ItemCode$"
ITEM_CODE_DESC = "ItemCodeDesc$"


# =============================================================================
# SO_SalesOrder_bus header and oLines
# =============================================================================

CUSTOMER_PO_NO = "CustomerPONo$"
ORDER_DATE = "OrderDate$"
SHIP_EXPIRE_DATE = "ShipExpireDate$"
COMMENT = "Comment$"
QUANTITY_ORDERED = "QuantityOrdered"
UNIT_PRICE = "UnitPrice"
LINES = "oLines"

DEFAULT_LINE_WAREHOUSE = "000"

# Header ship-to overrides, keyed by request attribute
SHIP_TO_OVERRIDE_FIELDS = {
    "name": SHIP_TO_NAME,
    "address1": SHIP_TO_ADDRESS1,
    "address2": SHIP_TO_ADDRESS2,
    "city": SHIP_TO_CITY,
    "state": SHIP_TO_STATE,
    "zip_code": SHIP_TO_ZIP_CODE,
    "country": SHIP_TO_COUNTRY_CODE,
}


# =============================================================================
# Methods
# =============================================================================

SET_USER = "nSetUser"
SET_COMPANY = "nSetCompany"
SET_MODULE = "nSetModule"
SET_DATE = "nSetDate"
LOOKUP_TASK = "nLookupTask"
SET_PROGRAM = "nSetProgram"
GET_NEXT_SALES_ORDER_NO = "nGetNextSalesOrderNo"
ADD_LINE = "nAddLine"
