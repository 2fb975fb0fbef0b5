import django_filters
from django.conf import settings
from django.db.models import Q
from .models import Product


class ProductFilter(django_filters.FilterSet):
    """Filter for Product model using django-filter"""

    # Searches name and description; every word must match
    search = django_filters.CharFilter(method='filter_search', label='Search')
    active = django_filters.CharFilter(method='filter_active', label='Active')
    low_stock = django_filters.CharFilter(method='filter_low_stock', label='Low Stock')
    out_of_stock = django_filters.CharFilter(method='filter_out_of_stock', label='Out of Stock')
    min_price = django_filters.NumberFilter(field_name='price', lookup_expr='gte')
    max_price = django_filters.NumberFilter(field_name='price', lookup_expr='lte')

    class Meta:
        model = Product
        fields = ['search', 'active', 'low_stock', 'out_of_stock', 'min_price', 'max_price']

    @staticmethod
    def _is_true(value):
        if isinstance(value, str):
            return value.lower() == 'true'
        return bool(value)

    def filter_search(self, queryset, name, value):
        if not value or not value.strip():
            return queryset
        search = value.strip()
        query = Q(name__icontains=search) | Q(description__icontains=search)
        words = search.split()
        if len(words) > 1:
            all_words = Q()
            for word in words:
                all_words &= Q(name__icontains=word)
            query |= all_words
        return queryset.filter(query)

    def filter_active(self, queryset, name, value):
        """Filter by active status (handles string 'true'/'false')"""
        if value is None or value == '':
            return queryset
        return queryset.filter(is_active=self._is_true(value))

    def filter_low_stock(self, queryset, name, value):
        """Products in stock but at or under the default low-stock threshold"""
        if value is None or value == '' or not self._is_true(value):
            return queryset
        threshold = settings.CRM['DEFAULT_LOW_STOCK_THRESHOLD']
        return queryset.filter(stock__gt=0, stock__lte=threshold)

    def filter_out_of_stock(self, queryset, name, value):
        if value is None or value == '' or not self._is_true(value):
            return queryset
        return queryset.filter(stock=0)
