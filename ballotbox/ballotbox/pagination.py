from rest_framework.pagination import PageNumberPagination
from rest_framework.response import Response


class StandardPagination(PageNumberPagination):
    """
    Page-number pagination that accepts `?page=` and `?limit=` and wraps the
    page in the API's success envelope.
    """

    page_size = 10
    page_size_query_param = "limit"
    max_page_size = 100

    def get_paginated_response(self, data):
        page = self.page
        return Response(
            {
                "status": "success",
                "data": data,
                "pagination": {
                    "current_page": page.number,
                    "total_pages": page.paginator.num_pages,
                    "total": page.paginator.count,
                    "has_next": page.has_next(),
                    "has_prev": page.has_previous(),
                },
            }
        )
