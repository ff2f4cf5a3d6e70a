"""
AWS operations for Elastic Beanstalk deployments.

Client factory, retry policy, resource probes, bucket provisioning, artifact
publishing, environment mutation and convergence monitoring.
"""
