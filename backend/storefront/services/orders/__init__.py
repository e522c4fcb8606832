"""Order lifecycle: status enums, fulfillment log and checkout orchestration."""
