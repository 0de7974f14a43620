"""
CDK Stack for app-infra

Declares the backend application topology: a VPC, an Aurora PostgreSQL
cluster, a Fargate service behind an application load balancer, and a
Route 53 alias record pointing at the load balancer.
"""

import logging

import aws_cdk as cdk
from aws_cdk import (
    Stack,
    RemovalPolicy,
    CfnOutput
)
from aws_cdk import (
    aws_ec2 as ec2,
    aws_ecs as ecs,
    aws_elasticloadbalancingv2 as elbv2,
    aws_iam as iam,
    aws_rds as rds,
    aws_route53 as route53,
    aws_route53_targets as route53_targets,
)
from constructs import Construct

from app_infra.config import AppInfraConfig
from app_infra.exceptions import ConfigurationError

logger = logging.getLogger(__name__)


class AppStack(Stack):
    """Deployment unit for the backend application."""

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        config: AppInfraConfig,
        **kwargs
    ) -> None:
        super().__init__(scope, construct_id, **kwargs)

        self.config = config
        # `environment` is taken by Stack
        self.env_name = config.environment

        # Database credentials
        self.db_secret = self._create_db_secret()

        # Network
        self.vpc = self._create_vpc()

        # Aurora PostgreSQL
        self.db_security_group = self._create_db_security_group()
        self.db_cluster = self._create_database()

        # ECS cluster and task execution role for pulling images
        self.ecs_cluster = self._create_ecs_cluster()
        self.execution_role = self._create_execution_role()

        # Security groups for the load balancer and the tasks
        self.lb_security_group = self._create_lb_security_group()
        self.task_definition = self._create_task_definition()
        self.ecs_security_group = self._create_ecs_security_group()

        # Container wired to the database endpoint and secret
        self.container = self._create_container()

        # Load balancer, service, and DNS
        self.load_balancer, self.listener = self._create_load_balancer()
        self.service = self._create_service()
        self.hosted_zone = self._resolve_hosted_zone()
        self.dns_record = self._create_dns_record()

        self._create_outputs()

        logger.info(
            "Declared stack %s (%s) in %s",
            construct_id,
            self.env_name,
            config.aws_region,
        )

    def _create_db_secret(self) -> rds.DatabaseSecret:
        """Create the Secrets Manager secret holding the master credentials."""
        db = self.config.database
        return rds.DatabaseSecret(
            self, "AppDBSecretKey",
            secret_name=db.secret_name,
            username=db.username
        )

    def _create_vpc(self) -> ec2.Vpc:
        """Create VPC with public and private subnets."""
        net = self.config.network
        vpc = ec2.Vpc(
            self, "AppVpc",
            max_azs=net.max_azs,
            nat_gateways=net.nat_gateways,
            subnet_configuration=[
                ec2.SubnetConfiguration(
                    subnet_type=ec2.SubnetType.PUBLIC,
                    name="public",
                    cidr_mask=net.cidr_mask
                ),
                ec2.SubnetConfiguration(
                    subnet_type=ec2.SubnetType.PRIVATE_WITH_EGRESS,
                    name="private",
                    cidr_mask=net.cidr_mask
                )
            ]
        )
        logger.debug("VPC: %d AZs, %d NAT gateways", net.max_azs, net.nat_gateways)
        return vpc

    def _create_db_security_group(self) -> ec2.SecurityGroup:
        db = self.config.database
        sg = ec2.SecurityGroup(
            self, "DbSg",
            vpc=self.vpc,
            description="DB SG",
            allow_all_outbound=True
        )
        sg.add_ingress_rule(
            ec2.Peer.ipv4(db.allowed_cidr),
            ec2.Port.tcp(db.port),
            f"Allow traffic to DB from {db.allowed_cidr}"
        )
        return sg

    def _create_database(self) -> rds.DatabaseCluster:
        """Create the Aurora PostgreSQL cluster on the public subnets.

        The first instance is the writer; any further configured instances
        are added as readers with the same instance type.
        """
        db = self.config.database
        instance_type = ec2.InstanceType(db.instance_type)

        readers = [
            rds.ClusterInstance.provisioned(
                f"Reader{index}",
                instance_type=instance_type,
                publicly_accessible=db.publicly_accessible
            )
            for index in range(1, db.instances)
        ]

        cluster = rds.DatabaseCluster(
            self, "AppAurora",
            engine=rds.DatabaseClusterEngine.aurora_postgres(
                version=rds.AuroraPostgresEngineVersion.of(db.engine_version, db.engine_major_version)
            ),
            credentials=rds.Credentials.from_secret(self.db_secret),
            port=db.port,
            default_database_name=db.database_name,
            vpc=self.vpc,
            vpc_subnets=ec2.SubnetSelection(subnet_type=ec2.SubnetType.PUBLIC),
            security_groups=[self.db_security_group],
            writer=rds.ClusterInstance.provisioned(
                "Writer",
                instance_type=instance_type,
                publicly_accessible=db.publicly_accessible
            ),
            readers=readers or None,
            deletion_protection=db.deletion_protection,
            removal_policy=RemovalPolicy.SNAPSHOT if self.env_name == "prod" else RemovalPolicy.DESTROY
        )
        logger.debug(
            "Aurora PostgreSQL %s: %d x %s on port %d",
            db.engine_version,
            db.instances,
            db.instance_type,
            db.port,
        )
        return cluster

    def _create_ecs_cluster(self) -> ecs.Cluster:
        return ecs.Cluster(
            self, "AppCluster",
            vpc=self.vpc,
            cluster_name=self.config.cluster_name
        )

    def _create_execution_role(self) -> iam.Role:
        """Create the ECS task execution role used to pull images and read secrets."""
        return iam.Role(
            self, "AppTaskExecutionRole",
            assumed_by=iam.ServicePrincipal("ecs-tasks.amazonaws.com"),
            managed_policies=[
                iam.ManagedPolicy.from_aws_managed_policy_name("service-role/AmazonECSTaskExecutionRolePolicy")
            ]
        )

    def _create_lb_security_group(self) -> ec2.SecurityGroup:
        sg = ec2.SecurityGroup(
            self, "LbSg",
            vpc=self.vpc,
            description="LB SG",
            allow_all_outbound=True
        )
        for port in self.config.load_balancer.ingress_ports:
            sg.add_ingress_rule(
                ec2.Peer.any_ipv4(),
                ec2.Port.tcp(port),
                f"Allow TCP {port} from anywhere"
            )
        return sg

    def _create_task_definition(self) -> ecs.FargateTaskDefinition:
        container = self.config.container
        return ecs.FargateTaskDefinition(
            self, "AppTaskDef",
            memory_limit_mib=container.memory_mib,
            cpu=container.cpu,
            execution_role=self.execution_role
        )

    def _create_ecs_security_group(self) -> ec2.SecurityGroup:
        sg = ec2.SecurityGroup(
            self, "EcsSg",
            vpc=self.vpc,
            description="ECS SG",
            allow_all_outbound=True
        )
        sg.add_ingress_rule(
            self.lb_security_group,
            ec2.Port.tcp(self.config.container.container_port),
            "Allow traffic from LB"
        )
        return sg

    def _create_container(self) -> ecs.ContainerDefinition:
        """Add the application container with the database connection settings.

        Host and port come from the cluster endpoint; username and password
        are injected from the credentials secret at task start.
        """
        container = self.config.container
        endpoint = self.db_cluster.cluster_endpoint

        environment = dict(container.environment)
        environment.update({
            "DB_NAME": self.config.database.database_name,
            "DB_PORT": cdk.Token.as_string(endpoint.port),
            "DB_HOST": endpoint.hostname,
        })

        definition = self.task_definition.add_container(
            "AppContainer",
            image=ecs.ContainerImage.from_registry(container.image),
            logging=ecs.LogDrivers.aws_logs(stream_prefix=container.log_stream_prefix),
            port_mappings=[ecs.PortMapping(container_port=container.container_port)],
            environment=environment,
            secrets={
                "DB_USERNAME": ecs.Secret.from_secrets_manager(self.db_secret, "username"),
                "DB_PASSWORD": ecs.Secret.from_secrets_manager(self.db_secret, "password"),
            }
        )
        logger.debug("Container %s listening on %d", container.image, container.container_port)
        return definition

    def _create_load_balancer(self) -> tuple[elbv2.ApplicationLoadBalancer, elbv2.ApplicationListener]:
        lb_config = self.config.load_balancer
        lb = elbv2.ApplicationLoadBalancer(
            self, "AppALB",
            vpc=self.vpc,
            internet_facing=lb_config.internet_facing,
            security_group=self.lb_security_group,
            load_balancer_name=lb_config.name
        )
        listener = lb.add_listener(
            "HttpListener",
            port=lb_config.listener_port,
            open=True
        )
        return lb, listener

    def _create_service(self) -> ecs.FargateService:
        """Create the Fargate service and register it behind the listener."""
        container = self.config.container
        lb_config = self.config.load_balancer

        service = ecs.FargateService(
            self, "AppService",
            cluster=self.ecs_cluster,
            task_definition=self.task_definition,
            desired_count=container.desired_count,
            assign_public_ip=container.assign_public_ip,
            security_groups=[self.ecs_security_group],
            vpc_subnets=ec2.SubnetSelection(subnet_type=ec2.SubnetType.PRIVATE_WITH_EGRESS)
        )

        self.listener.add_targets(
            "EcsTargets",
            port=container.container_port,
            targets=[service],
            health_check=elbv2.HealthCheck(
                path=lb_config.health_check_path,
                healthy_http_codes=lb_config.healthy_http_codes
            )
        )
        return service

    def _resolve_hosted_zone(self) -> route53.IHostedZone:
        """Import the hosted zone by id, or look it up by domain name.

        A lookup runs through the CDK context provider, which needs a concrete
        account and region on the stack.
        """
        dns = self.config.dns
        if dns.hosted_zone_id:
            return route53.HostedZone.from_hosted_zone_attributes(
                self, "AppZone",
                hosted_zone_id=dns.hosted_zone_id,
                zone_name=dns.domain_name
            )

        if cdk.Token.is_unresolved(self.account) or cdk.Token.is_unresolved(self.region):
            raise ConfigurationError(
                f"Looking up hosted zone {dns.domain_name} requires an explicit account and region; "
                "set CDK_DEFAULT_ACCOUNT/AWS_ACCOUNT_ID or dns.hosted_zone_id",
                config_key="dns.hosted_zone_id",
            )

        return route53.HostedZone.from_lookup(
            self, "AppZone",
            domain_name=dns.domain_name
        )

    def _create_dns_record(self) -> route53.ARecord:
        return route53.ARecord(
            self, "BackendAliasRecord",
            zone=self.hosted_zone,
            record_name=self.config.dns.record_name,
            target=route53.RecordTarget.from_alias(
                route53_targets.LoadBalancerTarget(self.load_balancer)
            )
        )

    def _create_outputs(self):
        """Create CloudFormation outputs."""
        CfnOutput(
            self, "VpcIdOutput",
            value=self.vpc.vpc_id,
            description="VPC ID for the application"
        )

        CfnOutput(
            self, "DatabaseEndpointOutput",
            value=self.db_cluster.cluster_endpoint.hostname,
            description="Aurora PostgreSQL cluster endpoint"
        )

        CfnOutput(
            self, "DatabaseSecretArnOutput",
            value=self.db_secret.secret_arn,
            description="Secrets Manager ARN for the database credentials"
        )

        CfnOutput(
            self, "LoadBalancerDnsOutput",
            value=self.load_balancer.load_balancer_dns_name,
            description="Application load balancer DNS name"
        )

        CfnOutput(
            self, "ServiceUrlOutput",
            value=self.config.service_url,
            description="Public URL of the backend service"
        )
