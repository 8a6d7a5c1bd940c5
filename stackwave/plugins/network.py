"""Network: the VPC every other cloud component is placed in.

Locally the compose network is created by the local stage itself, so this
plugin has nothing to add there.
"""

from collections.abc import Callable
from dataclasses import dataclass, field

from stackwave.plugin import BasePlugin, OtherDependencies
from stackwave.refs import CloudRef, CloudTemplate, cf_get_att, cf_ref, default_tags

REF_VPC = "v"
REF_INTERNET_GATEWAY = "ig"
REF_VPC_GATEWAY_ATTACHMENT = "vig"
REF_ROUTE_TABLE_PUBLIC = "rt-pub"
REF_ROUTE_PUBLIC = "r-pub"
REF_SUBNET_PUBLIC_A = "s-pub-a"
REF_SUBNET_PUBLIC_B = "s-pub-b"
REF_SUBNET_PRIVATE_A = "s-pri-a"
REF_SUBNET_PRIVATE_B = "s-pri-b"
REF_SECURITY_GROUP = "sg"
REF_SECURITY_GROUP_INGRESS = "sgi"

ATT_CIDR_BLOCK = "CidrBlock"
ATT_DEFAULT_SECURITY_GROUP = "DefaultSecurityGroup"
ATT_GROUP_ID = "GroupId"
ATT_SUBNET_ID = "SubnetId"

CIDR_ALL_DESTINATIONS = "0.0.0.0/0"
CIDR_VPC = "10.0.0.0/16"
CIDR_SUBNETS = {
    REF_SUBNET_PUBLIC_A: "10.0.0.0/19",
    REF_SUBNET_PUBLIC_B: "10.0.32.0/19",
    REF_SUBNET_PRIVATE_A: "10.0.64.0/19",
    REF_SUBNET_PRIVATE_B: "10.0.96.0/19",
}


@dataclass
class NetworkConfig:
    event_hook: Callable | None = None

    def validate(self, target):
        pass


@dataclass
class NetworkDependencies:
    other: OtherDependencies = field(default_factory=OtherDependencies)


class Network(BasePlugin):
    """Singleton VPC with public and private subnets in two availability zones.

    Production stages get one NAT gateway per zone; other stages share one.
    """

    display_name = "Network"
    name = "network"

    def __init__(self, config_func, dependencies=None):
        super().__init__(config_func, dependencies or NetworkDependencies())

    def get_cloud_template(self, build_dir):
        region = self.stage.app.config.region
        production = self.stage.mode.is_production
        tpl = CloudTemplate(self.stack_name, description=f"{self.stage.app.config.display_name} network")

        def add(ref, resource_type, properties=None, depends_on=None, tagged=True):
            if tagged:
                properties = {**(properties or {}), "Tags": default_tags(CloudRef(ref).resource_name(self))}
            return tpl.add_resource(ref, resource_type, properties, depends_on)

        add(
            REF_VPC,
            "AWS::EC2::VPC",
            {"CidrBlock": CIDR_VPC, "EnableDnsHostnames": True, "EnableDnsSupport": True},
        )
        tpl.export_ref(REF_VPC)
        tpl.export_att(REF_VPC, ATT_CIDR_BLOCK)
        tpl.export_att(REF_VPC, ATT_DEFAULT_SECURITY_GROUP)

        add(REF_INTERNET_GATEWAY, "AWS::EC2::InternetGateway")
        add(
            REF_VPC_GATEWAY_ATTACHMENT,
            "AWS::EC2::VPCGatewayAttachment",
            {"InternetGatewayId": cf_ref(REF_INTERNET_GATEWAY), "VpcId": cf_ref(REF_VPC)},
            tagged=False,
        )

        add(REF_ROUTE_TABLE_PUBLIC, "AWS::EC2::RouteTable", {"VpcId": cf_ref(REF_VPC)})
        add(
            REF_ROUTE_PUBLIC,
            "AWS::EC2::Route",
            {
                "DestinationCidrBlock": CIDR_ALL_DESTINATIONS,
                "GatewayId": cf_ref(REF_INTERNET_GATEWAY),
                "RouteTableId": cf_ref(REF_ROUTE_TABLE_PUBLIC),
            },
            depends_on=[REF_VPC_GATEWAY_ATTACHMENT],
            tagged=False,
        )

        zones = ("a", "b")
        for zone in zones:
            subnet = f"s-pub-{zone}"
            self._add_subnet(add, tpl, subnet, f"{region}{zone}", public=True)
            add(
                f"srt-pub-{zone}",
                "AWS::EC2::SubnetRouteTableAssociation",
                {"RouteTableId": cf_ref(REF_ROUTE_TABLE_PUBLIC), "SubnetId": cf_ref(subnet)},
                tagged=False,
            )

        nat_zones = zones if production else zones[:1]
        for zone in nat_zones:
            add(f"eip-{zone}", "AWS::EC2::EIP", {"Domain": "vpc"})
            add(
                f"ng-{zone}",
                "AWS::EC2::NatGateway",
                {"AllocationId": cf_get_att(f"eip-{zone}", "AllocationId"), "SubnetId": cf_ref(f"s-pub-{zone}")},
            )

        for zone in zones:
            nat_zone = zone if zone in nat_zones else nat_zones[0]
            subnet = f"s-pri-{zone}"
            add(f"rt-pri-{zone}", "AWS::EC2::RouteTable", {"VpcId": cf_ref(REF_VPC)})
            add(
                f"r-pri-{zone}",
                "AWS::EC2::Route",
                {
                    "DestinationCidrBlock": CIDR_ALL_DESTINATIONS,
                    "NatGatewayId": cf_ref(f"ng-{nat_zone}"),
                    "RouteTableId": cf_ref(f"rt-pri-{zone}"),
                },
                tagged=False,
            )
            self._add_subnet(add, tpl, subnet, f"{region}{zone}", public=False)
            add(
                f"srt-pri-{zone}",
                "AWS::EC2::SubnetRouteTableAssociation",
                {"RouteTableId": cf_ref(f"rt-pri-{zone}"), "SubnetId": cf_ref(subnet)},
                tagged=False,
            )

        add(
            REF_SECURITY_GROUP,
            "AWS::EC2::SecurityGroup",
            {
                "GroupDescription": CloudRef(REF_SECURITY_GROUP).resource_name(self),
                "GroupName": CloudRef(REF_VPC).resource_name(self),
                "SecurityGroupEgress": [{"IpProtocol": "-1", "CidrIp": CIDR_ALL_DESTINATIONS}],
                "VpcId": cf_ref(REF_VPC),
            },
        )
        tpl.export_ref(REF_SECURITY_GROUP)
        tpl.export_att(REF_SECURITY_GROUP, ATT_GROUP_ID)

        # Members of the security group can reach each other on every port.
        add(
            REF_SECURITY_GROUP_INGRESS,
            "AWS::EC2::SecurityGroupIngress",
            {
                "GroupId": cf_ref(REF_SECURITY_GROUP),
                "IpProtocol": "-1",
                "SourceSecurityGroupId": cf_ref(REF_SECURITY_GROUP),
            },
            tagged=False,
        )
        return tpl

    @staticmethod
    def _add_subnet(add, tpl, ref, availability_zone, public):
        add(
            ref,
            "AWS::EC2::Subnet",
            {
                "AvailabilityZone": availability_zone,
                "CidrBlock": CIDR_SUBNETS[ref],
                "MapPublicIpOnLaunch": True if public else None,
                "VpcId": cf_ref(REF_VPC),
            },
        )
        tpl.export_ref(ref)
        tpl.export_att(ref, ATT_SUBNET_ID)
