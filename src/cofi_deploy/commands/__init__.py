"""
Commands - CLI command implementations for cofi-deploy.

Each module corresponds to top-level CLI commands:
- deploy:   Fresh deploy or upgrade of a network's contracts
- status:   Show the recorded deployments and snapshot history
- topology: Show the desired contracts and wiring of a network
"""
