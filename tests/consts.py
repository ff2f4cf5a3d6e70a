TEST_REGION = "us-east-1"
TEST_ACCOUNT_ID = "123456789012"
TEST_APP_NAME = "test-app"
TEST_ENV_NAME = "test-env"
TEST_VERSION_LABEL = "v1.0.0"
TEST_BUCKET_NAME = f"elasticbeanstalk-{TEST_REGION}-{TEST_ACCOUNT_ID}"
TEST_SOLUTION_STACK = "64bit Amazon Linux 2023 v4.0.1 running Docker"

REQUIRED_OPTION_SETTINGS = [
    {
        "Namespace": "aws:autoscaling:launchconfiguration",
        "OptionName": "IamInstanceProfile",
        "Value": "aws-elasticbeanstalk-ec2-role",
    },
    {
        "Namespace": "aws:elasticbeanstalk:environment",
        "OptionName": "ServiceRole",
        "Value": "aws-elasticbeanstalk-service-role",
    },
]
