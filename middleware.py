from urllib.parse import parse_qs


class MethodOverrideMiddleware:
    """Turn ``POST ...?_method=PUT`` into a real PUT so HTML forms can reach
    PUT/PATCH/DELETE routes. The ``X-HTTP-Method-Override`` header works too.
    """

    allowed_methods = frozenset(['PUT', 'PATCH', 'DELETE'])

    def __init__(self, app):
        self.app = app

    def __call__(self, environ, start_response):
        if environ.get('REQUEST_METHOD') == 'POST':
            method = environ.get('HTTP_X_HTTP_METHOD_OVERRIDE')
            if not method:
                method = parse_qs(environ.get('QUERY_STRING', '')).get('_method', [''])[0]
            method = method.upper()
            if method in self.allowed_methods:
                environ['REQUEST_METHOD'] = method
        return self.app(environ, start_response)
