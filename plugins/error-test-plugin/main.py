"""Plugin whose route always raises; the host must answer 500 and keep running."""


def broken_route(request):
    raise RuntimeError("This is a test error from the error-test-plugin")


def init(host):
    host.api.register_route("/error-test", broken_route)
    host.api.get_logger().info("Error test plugin initialized")


def destroy():
    pass
