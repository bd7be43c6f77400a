"""partnerhub.integrations — External service gateway modules.

All outbound HTTP calls to third-party APIs go through a gateway in this
package, never via bare `requests` calls in services or blueprints.

Current gateways:
  sms_gateway.SmsGateway — Twilio-compatible SMS REST API
"""
