from olytics.models.aggregation_setting import AggregationSetting  # noqa: F401
