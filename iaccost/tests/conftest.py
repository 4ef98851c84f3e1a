"""
Shared pytest fixtures for iaccost tests.
"""

import sys
import os
from pathlib import Path

# Add project root to Python path
project_root = Path(__file__).parent.parent.parent
sys.path.insert(0, str(project_root))

# Keep tests offline and deterministic
os.environ.setdefault('PRICING_API_ENDPOINT', 'https://pricing.test/graphql')
os.environ.setdefault('ESTIMATE_TIMEOUT_SECONDS', '0')

import pytest
from typing import List

from iaccost.domain.pricing_models import PriceQuery, QueryResult
from iaccost.pricing.catalog_client import PricingCatalogClient
from iaccost.pricing.local_catalog import LocalCatalogClient


class RecordingCatalogClient(PricingCatalogClient):
    """Wraps a catalog and records every batch it receives."""

    name = "recording"

    def __init__(self, inner: PricingCatalogClient):
        self.inner = inner
        self.batches: List[List[PriceQuery]] = []

    async def batch_query(self, queries: List[PriceQuery]) -> List[QueryResult]:
        self.batches.append(list(queries))
        return await self.inner.batch_query(queries)

    @property
    def query_count(self) -> int:
        return sum(len(batch) for batch in self.batches)


def _price(price_hash, amount, unit="1 Hour", purchase_option="Consumption", **extra):
    price = {"priceHash": price_hash, "USD": amount, "unit": unit, "purchaseOption": purchase_option}
    price.update(extra)
    return price


@pytest.fixture
def catalog_products():
    """A small catalog covering the shipped Azure SQL and AWS builders."""
    return [
        # Azure SQL, vCore compute (two products match the provisioned regex)
        {
            "productHash": "sql-gp-gen5-a",
            "vendorName": "azure", "service": "SQL Database", "productFamily": "Databases",
            "region": "eastus",
            "attributes": {"productName": "SQL Database Single General Purpose - Compute Gen5",
                           "skuName": "4 vCore", "meterName": "vCore"},
            "prices": [_price("p-gp4", "0.5")],
        },
        {
            "productHash": "sql-gp-gen5-b",
            "vendorName": "azure", "service": "SQL Database", "productFamily": "Databases",
            "region": "eastus",
            "attributes": {"productName": "SQL Database Elastic Pool General Purpose - Compute Gen5",
                           "skuName": "4 vCore", "meterName": "vCore"},
            "prices": [_price("p-gp4-pool", "0.6")],
        },
        {
            "productHash": "sql-gps-gen5",
            "vendorName": "azure", "service": "SQL Database", "productFamily": "Databases",
            "region": "eastus",
            "attributes": {"productName": "SQL Database Single General Purpose - Serverless - Compute Gen5",
                           "skuName": "1 vCore", "meterName": "vCore"},
            "prices": [_price("p-gps1", "0.1")],
        },
        {
            "productHash": "sql-gp-storage",
            "vendorName": "azure", "service": "SQL Database", "productFamily": "Databases",
            "region": "eastus",
            "attributes": {"productName": "SQL Database Single General Purpose - Storage",
                           "skuName": "General Purpose", "meterName": "Data Stored"},
            "prices": [_price("p-gp-storage", "0.115", unit="1 GB/Month")],
        },
        {
            "productHash": "sql-gp-licence",
            "vendorName": "azure", "service": "SQL Database", "productFamily": "Databases",
            "region": "Global",
            "attributes": {"productName": "SQL Database General Purpose - SQL License",
                           "skuName": "vCore"},
            "prices": [_price("p-gp-licence", "0.1")],
        },
        {
            "productHash": "sql-ltr",
            "vendorName": "azure", "service": "SQL Database", "productFamily": "Databases",
            "region": "eastus",
            "attributes": {"productName": "SQL Database - LTR Backup Storage",
                           "skuName": "Backup RA-GRS", "meterName": "RA-GRS Data Stored"},
            "prices": [_price("p-ltr", "0.05", unit="1 GB/Month")],
        },
        {
            "productHash": "sql-dtu-s3",
            "vendorName": "azure", "service": "SQL Database", "productFamily": "Databases",
            "region": "eastus",
            "attributes": {"productName": "SQL Database Single Standard", "skuName": "S3"},
            "prices": [_price("p-s3", "4.8", unit="1/Day")],
        },
        {
            "productHash": "sql-dtu-standard-storage",
            "vendorName": "azure", "service": "SQL Database", "productFamily": "Databases",
            "region": "eastus",
            "attributes": {"productName": "SQL Database Standard - Storage", "skuName": "Standard",
                           "meterName": "Data Stored"},
            "prices": [_price("p-std-storage", "0.17", unit="1 GB/Month")],
        },
        # AWS
        {
            "productHash": "apigw-cache-0.5",
            "vendorName": "aws", "service": "AmazonApiGateway", "productFamily": "Amazon API Gateway Cache",
            "region": "us-east-1",
            "attributes": {"cacheMemorySizeGb": "0.5"},
            "prices": [_price("p-cache", "0.02", unit="Hrs", purchase_option="on_demand")],
        },
        {
            "productHash": "lightsail-medium-linux",
            "vendorName": "aws", "service": "AmazonLightsail", "productFamily": "Lightsail Instance",
            "region": "us-east-1",
            "attributes": {"memory": "4GB", "operatingSystem": "Linux"},
            "prices": [_price("p-ls", "0.0268817", unit="Hrs", purchase_option="on_demand")],
        },
    ]


@pytest.fixture
def client():
    """FastAPI test client."""
    from fastapi.testclient import TestClient
    from iaccost.main import app
    return TestClient(app)


@pytest.fixture
def local_catalog(catalog_products):
    """LocalCatalogClient over the sample catalog."""
    return LocalCatalogClient.from_dicts(catalog_products)


@pytest.fixture
def recording_catalog(local_catalog):
    """Sample catalog that records the batches it answers."""
    return RecordingCatalogClient(local_catalog)


@pytest.fixture
def sample_plan():
    """JSON plan with a module-scoped database referencing a root server."""
    return {
        "format_version": "1.2",
        "planned_values": {
            "root_module": {
                "resources": [
                    {
                        "address": "azurerm_mssql_server.main",
                        "mode": "managed",
                        "type": "azurerm_mssql_server",
                        "name": "main",
                        "values": {"name": "sql-main", "location": "East US"},
                    },
                    {
                        "address": "azurerm_mssql_database.gp",
                        "mode": "managed",
                        "type": "azurerm_mssql_database",
                        "name": "gp",
                        "values": {"sku_name": "GP_Gen5_4", "max_size_gb": 32},
                    },
                    {
                        "address": "aws_api_gateway_stage.prod",
                        "mode": "managed",
                        "type": "aws_api_gateway_stage",
                        "name": "prod",
                        "values": {"cache_cluster_size": "0.5", "region": "us-east-1"},
                    },
                    {
                        "address": "aws_unsupported_thing.x",
                        "mode": "managed",
                        "type": "aws_unsupported_thing",
                        "name": "x",
                        "values": {},
                    },
                ],
            }
        },
        "configuration": {
            "root_module": {
                "resources": [
                    {
                        "address": "azurerm_mssql_database.gp",
                        "type": "azurerm_mssql_database",
                        "name": "gp",
                        "expressions": {
                            "server_id": {"references": ["azurerm_mssql_server.main.id",
                                                         "azurerm_mssql_server.main"]},
                        },
                    },
                ],
            }
        },
    }
