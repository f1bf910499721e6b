import io
import re

import pytest

from cwexport.associator import Associator, NopAssociator, build_labels_map, contains_all
from cwexport.logs import new_logger, new_nop_logger
from cwexport.model import Dimension, DimensionsRegexp, Metric, TaggedResource


def _regexps(*entries):
    return [DimensionsRegexp(regexp=re.compile(pattern), dimensions_names=list(names))
            for pattern, names in entries]


EC2_REGEXPS = _regexps((r"instance/(i-[^/]+)", ["InstanceId"]))
LAMBDA_REGEXPS = _regexps((r"function:([^/]+)", ["FunctionName"]))
MQ_REGEXPS = _regexps((r"broker:([^:]+)", ["Broker"]))
SAGEMAKER_REGEXPS = _regexps((r":endpoint/([^/]+)$", ["EndpointName"]))
ECS_REGEXPS = _regexps(
    (r":cluster/([^/]+)$", ["ClusterName"]),
    (r":service/([^/]+)/([^/]+)$", ["ClusterName", "ServiceName"]),
)


def _metric(namespace, name, *dims):
    return Metric(
        metric_name=name,
        namespace=namespace,
        dimensions=[Dimension(name=n, value=v) for n, v in dims],
    )


EC2_1 = TaggedResource(arn="arn:aws:ec2:us-east-1:123456789012:instance/i-abc123", namespace="AWS/EC2")
EC2_2 = TaggedResource(arn="arn:aws:ec2:us-east-1:123456789012:instance/i-def456", namespace="AWS/EC2")
LAMBDA_FN = TaggedResource(
    arn="arn:aws:lambda:us-east-2:123456789012:function:lambdaFunction", namespace="AWS/Lambda"
)
RABBIT = TaggedResource(
    arn="arn:aws:mq:us-east-2:123456789012:broker:rabbitmq-broker:b-000-111-222-333",
    namespace="AWS/AmazonMQ",
)
ACTIVE = TaggedResource(
    arn="arn:aws:mq:us-east-2:123456789012:broker:activemq-broker:b-000-111-222-333",
    namespace="AWS/AmazonMQ",
)
SM_ONE = TaggedResource(
    arn="arn:aws:sagemaker:us-west-2:123456789012:endpoint/example-endpoint-one",
    namespace="AWS/SageMaker",
)
SM_TWO = TaggedResource(
    arn="arn:aws:sagemaker:us-west-2:123456789012:endpoint/example-endpoint-two",
    namespace="AWS/SageMaker",
)
SM_UPPER = TaggedResource(
    arn="arn:aws:sagemaker:us-west-2:123456789012:endpoint/example-endpoint-upper",
    namespace="AWS/SageMaker",
)
ECS_CLUSTER = TaggedResource(arn="arn:aws:ecs:af-south-1:123456789222:cluster/sampleCluster", namespace="AWS/ECS")
ECS_SVC1 = TaggedResource(
    arn="arn:aws:ecs:af-south-1:123456789222:service/sampleCluster/service1", namespace="AWS/ECS"
)
ECS_SVC2 = TaggedResource(
    arn="arn:aws:ecs:af-south-1:123456789222:service/sampleCluster/service2", namespace="AWS/ECS"
)

CASES = [
    # EC2
    (EC2_REGEXPS, [EC2_1, EC2_2],
     _metric("AWS/EC2", "CPUUtilization", ("InstanceId", "i-abc123")), False, EC2_1),
    (EC2_REGEXPS, [EC2_1, EC2_2],
     _metric("AWS/EC2", "CPUUtilization", ("InstanceId", "i-def456")), False, EC2_2),
    (EC2_REGEXPS, [EC2_1, EC2_2],
     _metric("AWS/EC2", "CPUUtilization", ("InstanceId", "i-blahblah")), True, None),
    (EC2_REGEXPS, [EC2_1, EC2_2],
     _metric("AWS/EC2", "StatusCheckFailed_System", ("AutoScalingGroupName", "some-asg-name")),
     False, None),
    # Lambda
    (LAMBDA_REGEXPS, [LAMBDA_FN],
     _metric("AWS/Lambda", "Invocations", ("FunctionName", "lambdaFunction")), False, LAMBDA_FN),
    (LAMBDA_REGEXPS, [LAMBDA_FN],
     _metric("AWS/Lambda", "Invocations", ("FunctionName", "anotherLambdaFunction")), True, None),
    (LAMBDA_REGEXPS, [LAMBDA_FN],
     _metric("AWS/Lambda", "Invocations", ("FunctionName", "lambdaFunction"),
             ("Resource", "lambdaFunction")), False, LAMBDA_FN),
    (LAMBDA_REGEXPS, [LAMBDA_FN], _metric("AWS/Lambda", "Invocations"), False, None),
    # AmazonMQ
    (MQ_REGEXPS, [RABBIT],
     _metric("AWS/AmazonMQ", "ProducerCount", ("Broker", "rabbitmq-broker")), False, RABBIT),
    (MQ_REGEXPS, [ACTIVE],
     _metric("AWS/AmazonMQ", "ProducerCount", ("Broker", "activemq-broker-1")), False, ACTIVE),
    # SageMaker
    (SAGEMAKER_REGEXPS, [SM_ONE, SM_TWO, SM_UPPER],
     _metric("AWS/SageMaker", "Invocations", ("EndpointName", "example-endpoint-one"),
             ("VariantName", "example-endpoint-one-variant-one"),
             ("EndpointConfigName", "example-endpoint-one-endpoint-config")), False, SM_ONE),
    (SAGEMAKER_REGEXPS, [SM_ONE, SM_TWO, SM_UPPER],
     _metric("AWS/SageMaker", "Invocations", ("EndpointName", "example-endpoint-two"),
             ("VariantName", "example-endpoint-two-variant-one")), False, SM_TWO),
    (SAGEMAKER_REGEXPS, [SM_ONE, SM_TWO, SM_UPPER],
     _metric("AWS/SageMaker", "Invocations", ("EndpointName", "example-endpoint-three"),
             ("VariantName", "example-endpoint-three-variant-one")), True, None),
    (SAGEMAKER_REGEXPS, [SM_ONE, SM_TWO, SM_UPPER],
     _metric("AWS/SageMaker", "ModelLatency", ("EndpointName", "Example-Endpoint-Upper"),
             ("VariantName", "example-endpoint-two-variant-one")), False, SM_UPPER),
    # ECS
    (ECS_REGEXPS, [ECS_CLUSTER, ECS_SVC1, ECS_SVC2],
     _metric("AWS/ECS", "MemoryReservation", ("ClusterName", "sampleCluster")), False, ECS_CLUSTER),
    (ECS_REGEXPS, [ECS_CLUSTER, ECS_SVC1, ECS_SVC2],
     _metric("AWS/ECS", "CPUUtilization", ("ClusterName", "sampleCluster"),
             ("ServiceName", "service1")), False, ECS_SVC1),
    (ECS_REGEXPS, [ECS_CLUSTER, ECS_SVC1, ECS_SVC2],
     _metric("AWS/ECS", "CPUUtilization", ("ClusterName", "sampleCluster"),
             ("ServiceName", "service2")), False, ECS_SVC2),
]


@pytest.mark.parametrize("regexps, resources, metric, expected_skip, expected_resource", CASES)
def test_associate_metric_to_resource(regexps, resources, metric, expected_skip, expected_resource):
    associator = Associator(new_nop_logger(), regexps, resources)
    resource, skip = associator.associate_metric_to_resource(metric)
    assert skip is expected_skip
    assert resource is expected_resource


def test_no_regexps_keeps_metric_global():
    associator = Associator(new_nop_logger(), [], [EC2_1])
    metric = _metric("AWS/EC2", "CPUUtilization", ("InstanceId", "i-abc123"))
    assert associator.associate_metric_to_resource(metric) == (None, False)


def test_resource_mapped_by_first_matching_regexp_only():
    regexps = _regexps(
        (r"instance/(i-[^/]+)", ["InstanceId"]),
        (r":([0-9]+):instance/(i-[^/]+)", ["AccountId", "InstanceId"]),
    )
    associator = Associator(new_nop_logger(), regexps, [EC2_1])
    metric = _metric("AWS/EC2", "CPUUtilization", ("AccountId", "123456789012"),
                     ("InstanceId", "i-abc123"))
    assert associator.associate_metric_to_resource(metric) == (EC2_1, False)


def test_more_specific_mapping_falls_back_to_fewer_dimensions():
    metric = _metric("AWS/ECS", "CPUUtilization", ("ClusterName", "sampleCluster"),
                     ("ServiceName", "unknown"))
    associator = Associator(new_nop_logger(), ECS_REGEXPS, [ECS_CLUSTER, ECS_SVC1])
    resource, skip = associator.associate_metric_to_resource(metric)
    assert resource is ECS_CLUSTER
    assert skip is False


def test_debug_logger_records_mappings():
    stream = io.StringIO()
    logger = new_logger("logfmt", True, stream=stream)
    associator = Associator(logger, EC2_REGEXPS, [EC2_1])
    resource, _ = associator.associate_metric_to_resource(
        _metric("AWS/EC2", "CPUUtilization", ("InstanceId", "i-abc123"))
    )
    assert resource is EC2_1
    output = stream.getvalue()
    assert "associator mapping" in output
    assert "resource matched" in output


def test_nop_associator():
    metric = _metric("AWS/EC2", "CPUUtilization", ("InstanceId", "i-abc123"))
    assert NopAssociator().associate_metric_to_resource(metric) == (None, False)


@pytest.mark.parametrize(
    "a, b, expected",
    [
        (["x", "y"], ["x"], True),
        (["x", "y"], ["y", "x"], True),
        (["x"], ["x", "y"], False),
        ([], [], True),
        ([], ["x"], False),
    ],
)
def test_contains_all(a, b, expected):
    assert contains_all(a, b) is expected


def test_build_labels_map_selects_dimensions():
    metric = _metric("AWS/ECS", "CPU", ("ClusterName", "c"), ("ServiceName", "s"), ("Other", "o"))
    assert build_labels_map(metric, ["ClusterName", "ServiceName"]) == {
        "ClusterName": "c",
        "ServiceName": "s",
    }


def test_build_labels_map_amazon_mq_suffix():
    metric = _metric("AWS/AmazonMQ", "ProducerCount", ("Broker", "activemq-broker-2"))
    assert build_labels_map(metric, ["Broker"]) == {"Broker": "activemq-broker"}


def test_build_labels_map_suffix_kept_in_other_namespace():
    metric = _metric("AWS/Other", "ProducerCount", ("Broker", "activemq-broker-2"))
    assert build_labels_map(metric, ["Broker"]) == {"Broker": "activemq-broker-2"}


def test_build_labels_map_sagemaker_lower_case():
    metric = _metric("AWS/SageMaker", "ModelLatency", ("EndpointName", "My-Endpoint"))
    assert build_labels_map(metric, ["EndpointName"]) == {"EndpointName": "my-endpoint"}