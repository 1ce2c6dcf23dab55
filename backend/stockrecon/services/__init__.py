# Services module

from stockrecon.services.credential_vault import CredentialVault, OLSERA_PROVIDER
from stockrecon.services.inventory_client import ConsumptionRecord, OlseraInventoryClient
from stockrecon.services.media_store import MediaStore
from stockrecon.services.stock_reconciliation_service import StockReconciliationService

__all__ = [
    "CredentialVault",
    "OLSERA_PROVIDER",
    "ConsumptionRecord",
    "OlseraInventoryClient",
    "MediaStore",
    "StockReconciliationService",
]
