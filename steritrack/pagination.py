# steritrack/pagination.py
from rest_framework.pagination import PageNumberPagination

from sterile_core.selectors import MAX_PAGE_SIZE


class DefaultPagination(PageNumberPagination):
    page_size = 50
    page_size_query_param = "page_size"
    max_page_size = MAX_PAGE_SIZE
