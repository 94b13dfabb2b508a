import copy
import json


def load_settings(settings_file: str | None = "in/settings.json", settings_object: dict = None):
	if settings_object is not None:
		settings = copy.deepcopy(settings_object)
	elif settings_file is not None:
		with open(settings_file, "r") as f:
			settings = json.load(f)
	else:
		settings = {}
	template = load_settings_template()
	# merge settings with template; settings will overwrite template values
	settings = merge_settings(template, settings)
	settings = remove_comments_from_settings(settings)
	settings = replace_variables(settings)
	return settings


def load_settings_template():
	return {
		"data": {
			"filename": "in/boston.csv",
			"key": "TRACT",
			"fields": {
				"latitude": "LAT",
				"longitude": "LON",
				"response": "CMEDV"
			},
			"log_response": True,
			"standardize": True,
			"candidate_vars": [
				"CRIM", "ZN", "INDUS", "CHAS", "NOX", "RM", "AGE", "DIS",
				"RAD", "TAX", "PTRATIO", "B", "LSTAT", "LON", "LAT"
			]
		},
		"modeling": {
			"gpr": {
				"constant_value": 1.0,
				"length_scale": 1.0,
				"length_scale_bounds": [1e-2, 1e3],
				"noise_level": 0.1,
				"noise_level_bounds": [1e-5, 1e1],
				"alpha": 1e-10,
				"normalize_y": True,
				"n_restarts_optimizer": 0,
				"random_state": 0,
				"fail_on_convergence_warning": False,
				"parameter_count": "predictors_plus_hyperparameters"
			},
			"gwr": {
				"kernel": "bisquare",
				"fixed": False,
				"ind_vars": None,
				"seed": 0
			},
			"bma": {
				"min_subset_size": 1,
				"max_subset_size": None,
				"n_jobs": -1,
				"criteria": {
					"bic": {"direction": "lower"},
					"map": {"direction": "higher"},
					"spbic": {"direction": "lower"}
				},
				"tie_priority": ["bic", "map", "spbic"],
				"tie_tolerance": 0.0,
				"hessian": "identity",
				"complexity": "identity",
				"top_n": 10
			}
		},
		"output": {
			"path": "out",
			"maps": True,
			"save_checkpoints": False
		}
	}


def remove_comments_from_settings(s: dict):
	comment_token = "__"
	keys_to_remove = []
	for key in s:
		entry = s[key]
		if key.startswith(comment_token):
			keys_to_remove.append(key)
		elif isinstance(entry, dict):
			s[key] = remove_comments_from_settings(entry)
	for k in keys_to_remove:
		del s[k]
	return s


def replace_variables(settings: dict):

	result = settings.copy()
	failsafe = 999
	changes = 1

	while changes > 0 and failsafe > 0:
		result, changes = _replace_variables(result, settings)
		failsafe -= 1

	return result


def _replace_variables(node: dict | list | str, settings: dict, var_token: str = "$$"):
	# Values that are strings prefixed with $$ are replaced by the setting found at that dotted path

	changes = 0
	replacement = node

	if isinstance(node, str):
		if node.startswith(var_token):
			var_name = node[len(var_token):]
			replacement = lookup_variable_in_settings(settings, var_name)
			changes += 1

	elif isinstance(node, dict):
		for key in node:
			_replacement, _changes = _replace_variables(node[key], settings, var_token)
			if _changes > 0:
				node[key] = _replacement
				changes += _changes
		replacement = node

	elif isinstance(node, list):
		for i, entry in enumerate(node):
			_replacement, _changes = _replace_variables(entry, settings, var_token)
			if _changes > 0:
				node[i] = _replacement
				changes += _changes
		replacement = node

	return replacement, changes


def lookup_variable_in_settings(s: dict, var_name: str, path: list[str] = None):
	if path is None:
		path = var_name.split(".")

	if len(path) > 0 and isinstance(s, dict):
		first_bit = path[0]
		if first_bit in s:
			if len(path) == 1:
				return s[first_bit]
			else:
				return lookup_variable_in_settings(s[first_bit], "", path[1:])

	return None


def merge_settings(template: dict, local: dict):
	merged = copy.deepcopy(template)

	for key in local:
		entry_l = local[key]
		if key in merged:
			entry_t = merged[key]
			if isinstance(entry_t, dict) and isinstance(entry_l, dict):
				merged[key] = merge_settings(entry_t, entry_l)
			elif isinstance(entry_t, list) and isinstance(entry_l, list) and key not in _REPLACE_LISTS:
				# add any new local items that aren't already in the template
				for item in entry_l:
					if item not in entry_t:
						entry_t.append(item)
				merged[key] = entry_t
			else:
				merged[key] = copy.deepcopy(entry_l)
		else:
			merged[key] = copy.deepcopy(entry_l)

	return merged


# Lists that describe an exact selection rather than an accumulating collection
_REPLACE_LISTS = {
	"candidate_vars",
	"tie_priority",
	"length_scale_bounds",
	"noise_level_bounds",
	"ind_vars"
}


def get_data_fields(s: dict):
	return s.get("data", {}).get("fields", {})


def get_key_field(s: dict):
	return s.get("data", {}).get("key", "key")


def get_coordinate_fields(s: dict):
	fields = get_data_fields(s)
	return fields.get("longitude", "LON"), fields.get("latitude", "LAT")


def get_response_field(s: dict):
	return get_data_fields(s).get("response", "CMEDV")


def get_dep_var(s: dict):
	response = get_response_field(s)
	if s.get("data", {}).get("log_response", True):
		return f"log_{response}"
	return response


def get_candidate_vars(s: dict):
	return list(s.get("data", {}).get("candidate_vars", []))


def get_gpr_settings(s: dict):
	return s.get("modeling", {}).get("gpr", {})


def get_gwr_settings(s: dict):
	return s.get("modeling", {}).get("gwr", {})


def get_bma_settings(s: dict):
	return s.get("modeling", {}).get("bma", {})


def get_criterion_direction(s: dict, criterion: str):
	defaults = {"bic": "lower", "map": "higher", "spbic": "lower"}
	criteria = get_bma_settings(s).get("criteria", {})
	return criteria.get(criterion, {}).get("direction", defaults.get(criterion, "lower"))


def get_output_path(s: dict):
	return s.get("output", {}).get("path", "out")
