"""
Resource types that carry no charge of their own.

They are registered so they show up as free instead of unsupported.
"""
from typing import Dict, List, Optional, Tuple

from iaccost.domain.cost_models import Resource
from iaccost.graph.attribute_graph import AttributeGraph, AttributeNode
from iaccost.providers.registry import RegistryItem
from iaccost.services.usage_engine import ResourceUsage


# resource type -> (service, note)
FREE_RESOURCES: Dict[str, Tuple[str, str]] = {
    # VPC & networking
    "aws_vpc": ("VPC", "VPCs have no charge"),
    "aws_subnet": ("VPC", "Subnets have no charge"),
    "aws_internet_gateway": ("VPC", "Internet gateways have no charge"),
    "aws_route_table": ("VPC", "Route tables have no charge"),
    "aws_route_table_association": ("VPC", "Route table associations have no charge"),
    "aws_route": ("VPC", "Routes have no charge"),
    "aws_network_acl": ("VPC", "Network ACLs have no charge"),
    "aws_security_group": ("EC2", "Security groups have no charge"),
    "aws_security_group_rule": ("EC2", "Security group rules have no charge"),

    # IAM
    "aws_iam_role": ("IAM", "IAM roles have no charge"),
    "aws_iam_role_policy": ("IAM", "IAM role policies have no charge"),
    "aws_iam_role_policy_attachment": ("IAM", "IAM role policy attachments have no charge"),
    "aws_iam_policy": ("IAM", "IAM policies have no charge"),
    "aws_iam_instance_profile": ("IAM", "IAM instance profiles have no charge"),
    "aws_iam_user": ("IAM", "IAM users have no charge"),

    # API Gateway configuration
    "aws_api_gateway_rest_api": ("API Gateway", "REST API definitions are billed per request, not per API"),
    "aws_api_gateway_deployment": ("API Gateway", "Deployments have no charge"),
    "aws_api_gateway_resource": ("API Gateway", "API resources have no charge"),
    "aws_api_gateway_method": ("API Gateway", "API methods have no charge"),
    "aws_api_gateway_integration": ("API Gateway", "API integrations have no charge"),

    # S3 bucket configuration
    "aws_s3_bucket_policy": ("S3", "Bucket policies have no charge"),
    "aws_s3_bucket_public_access_block": ("S3", "Public access blocks have no charge"),
    "aws_s3_bucket_versioning": ("S3", "Versioning configuration has no charge"),

    # Azure
    "azurerm_resource_group": ("Resource Manager", "Resource groups have no charge"),
    "azurerm_mssql_server": ("SQL Database", "Logical SQL servers have no charge; databases are billed"),
    "azurerm_mssql_firewall_rule": ("SQL Database", "Firewall rules have no charge"),
    "azurerm_virtual_network": ("Virtual Network", "Virtual networks have no charge"),
    "azurerm_subnet": ("Virtual Network", "Subnets have no charge"),
    "azurerm_network_security_group": ("Virtual Network", "Network security groups have no charge"),
    "azurerm_role_assignment": ("Authorization", "Role assignments have no charge"),
}


def _free_builder(node: AttributeNode, usage: ResourceUsage, graph: AttributeGraph) -> Optional[Resource]:
    return Resource(address=node.address, resource_type=node.type)


def registry_items() -> List[RegistryItem]:
    return [
        RegistryItem(name=name, builder=_free_builder, notes=[f"Free - {note} ({service})"], free=True)
        for name, (service, note) in FREE_RESOURCES.items()
    ]
