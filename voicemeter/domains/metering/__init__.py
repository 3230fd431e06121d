"""Metering domain: limit configuration, usage period ledger, gate, recorder and periods.

Use Inject(MeteringGateProtocol) before starting a unit of work and
Inject(UsageRecorderProtocol) after it completes. Threshold crossings are
published on the EventBus and handled by the alerts domain.
"""
