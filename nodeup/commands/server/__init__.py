"""Server management commands."""


def register_server_command(subparsers):
    """Register the 'server' command with its action subparsers."""
    from nodeup.commands.server.create import register_create_targets

    server_parser = subparsers.add_parser("server", help="Create and bootstrap cloud servers")
    action_subparsers = server_parser.add_subparsers(dest="action", required=True)

    create_parser = action_subparsers.add_parser("create", help="Launch an instance and bootstrap it with Chef")
    create_subparsers = create_parser.add_subparsers(dest="provider", required=True)
    register_create_targets(create_subparsers)
