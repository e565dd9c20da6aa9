"""
🔍 Endpoint discovery
=====================
Looks up the pet store service URLs in AWS Systems Manager Parameter Store.
Anything that cannot be resolved falls back to its default, so discovery
always yields a usable set of endpoints.
"""

import dataclasses
import logging
from typing import Dict, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from rich.console import Console
from rich.markup import escape

from load_types import Endpoints

logger = logging.getLogger(__name__)
console = Console()

# SSM parameter name -> Endpoints field
PARAMETERS = {
    "/petstore/petlistadoptionsurl": "petlistadoptions",
    "/petstore/searchapiurl": "petsearch",
    "/petstore/paymentapiurl": "payforadoption",
    "/petstore/petfoodapiurl": "petfood",
    "/petstore/petfoodcarturl": "petfoodcart",
}


class SSMEndpointDiscovery:

    def __init__(self, region: str, client=None):
        self.region = region
        self._client = client

    def _get_client(self):
        if self._client is None:
            self._client = boto3.client("ssm", region_name=self.region)
        return self._client

    def _lookup(self) -> Dict[str, str]:
        discovered: Dict[str, str] = {}
        try:
            client = self._get_client()
        except BotoCoreError as e:
            console.print(f"[red]❌ Cannot create SSM client: {escape(str(e))}[/red]")
            return discovered

        for name, field_name in PARAMETERS.items():
            try:
                response = client.get_parameter(Name=name, WithDecryption=True)
            except ClientError as e:
                if e.response.get("Error", {}).get("Code") == "ParameterNotFound":
                    console.print(f"[yellow]⚠️  Parameter not found: {name}[/yellow]")
                else:
                    console.print(f"[red]❌ Error fetching {name}: {escape(str(e))}[/red]")
                continue
            except BotoCoreError as e:
                # Credentials/region/network problems affect every lookup
                console.print(f"[red]❌ Error fetching {name}: {escape(str(e))}[/red]")
                logger.warning("Stopping SSM discovery after %s", type(e).__name__)
                break

            value = (response.get("Parameter") or {}).get("Value")
            if value:
                discovered[field_name] = value
                console.print(f"[green]✓ Found {field_name}: {escape(value)}[/green]")
        return discovered

    def resolve_endpoints(self, defaults: Optional[Endpoints] = None) -> Endpoints:
        """Discovered URLs where available, defaults everywhere else."""
        console.print("[blue]🔍 Discovering endpoints from SSM...[/blue]")
        defaults = defaults or Endpoints.from_env()
        discovered = self._lookup()

        for field_name in PARAMETERS.values():
            if field_name not in discovered:
                console.print(
                    f"[cyan]🔄 Using fallback for {field_name}: "
                    f"{escape(getattr(defaults, field_name))}[/cyan]"
                )

        return dataclasses.replace(defaults, **discovered)
