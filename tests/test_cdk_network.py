from aws_cdk.assertions import Match, Template


def test_vpc_has_public_and_private_subnets(template: Template):
    template.resource_count_is("AWS::EC2::VPC", 1)
    # 2 AZs x (public + private)
    template.resource_count_is("AWS::EC2::Subnet", 4)
    template.resource_count_is("AWS::EC2::NatGateway", 1)

    subnets = template.find_resources("AWS::EC2::Subnet")
    for logical_id, subnet in subnets.items():
        cidr = subnet["Properties"]["CidrBlock"]
        assert cidr.endswith("/24"), f"{logical_id} has unexpected CIDR {cidr}"

    public = [k for k, s in subnets.items() if s["Properties"].get("MapPublicIpOnLaunch") is True]
    assert len(public) == 2


def test_security_groups_declared(template: Template):
    for description in ("DB SG", "LB SG", "ECS SG"):
        template.has_resource_properties(
            "AWS::EC2::SecurityGroup",
            {"GroupDescription": Match.string_like_regexp(description)},
        )


def test_lb_security_group_open_for_http_and_https(template: Template):
    for port in (80, 443):
        template.has_resource_properties(
            "AWS::EC2::SecurityGroup",
            {
                "GroupDescription": "LB SG",
                "SecurityGroupIngress": Match.array_with([
                    Match.object_like({"CidrIp": "0.0.0.0/0", "FromPort": port, "ToPort": port, "IpProtocol": "tcp"})
                ]),
            },
        )


def test_ecs_security_group_accepts_lb_on_container_port(template: Template):
    groups = template.find_resources("AWS::EC2::SecurityGroup")
    ecs_sg = next(k for k, g in groups.items() if g["Properties"]["GroupDescription"] == "ECS SG")
    lb_sg = next(k for k, g in groups.items() if g["Properties"]["GroupDescription"] == "LB SG")

    template.has_resource_properties(
        "AWS::EC2::SecurityGroupIngress",
        {
            "IpProtocol": "tcp",
            "FromPort": 8080,
            "ToPort": 8080,
            "GroupId": {"Fn::GetAtt": [ecs_sg, "GroupId"]},
            "SourceSecurityGroupId": {"Fn::GetAtt": [lb_sg, "GroupId"]},
        },
    )
